from typing import Annotated

from fastapi import Query

LimitParam = Annotated[int, Query(ge=1, le=100)]
OffsetParam = Annotated[int, Query(ge=0)]
# Upper bounds are clamped by the services against settings.
HorizonDaysParam = Annotated[int | None, Query(ge=1)]
