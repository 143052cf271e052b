from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator

from booking_ledger.core.timeutils import ensure_utc

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
