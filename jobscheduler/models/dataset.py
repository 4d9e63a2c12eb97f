"""Dataset model referenced by dataset processing jobs."""

import uuid

from sqlalchemy import Column, DateTime, Text, Uuid

from jobscheduler.database import Base
from jobscheduler.models.job import utcnow
from jobscheduler.models.types import JSONType


class Dataset(Base):
    """Dataset holds records that dataset processing jobs operate on."""

    __tablename__ = "datasets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text)
    content = Column(JSONType)
    created_at = Column(DateTime(timezone=True), default=utcnow)
