from sqlalchemy import Column, String, Text
from src.database import Base
from src.shared.models import AuditMixin, JSONType

# Owner marker for artifacts created without a signed-in user
ANONYMOUS_OWNER = "anonymous"


class Chart(Base, AuditMixin):
    __tablename__ = "charts"

    session_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    anonymous_id = Column(String, nullable=True)
    chart_data = Column(JSONType, nullable=False)


class CsvTable(Base, AuditMixin):
    __tablename__ = "csv_tables"

    session_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    anonymous_id = Column(String, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    headers = Column(JSONType, nullable=False)
    rows = Column(JSONType, nullable=False)
