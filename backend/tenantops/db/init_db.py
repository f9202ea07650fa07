from tenantops.db.base import Base
from tenantops.db.session import engine
import tenantops.db.models  # noqa


def init_db():
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    init_db()
