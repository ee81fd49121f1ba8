import os, sys, pytest
# Ensure the backend directory is on path so 'roleguard' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import roleguard
from roleguard import create_app, get_db
from roleguard.models.role import Base
# Import all model modules to ensure tables are registered before create_all
import roleguard.models.audit  # noqa: F401


@pytest.fixture(scope='session')
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'TESTING': True,
        'JWT_SECRET_KEY': 'test-secret',
    })
    yield app


@pytest.fixture(autouse=True)
def db(app_instance):
    """Fresh schema for every test; yields the shared scoped session."""
    roleguard.SessionLocal.remove()
    engine = get_db().get_bind()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    session = get_db()
    yield session
    session.rollback()
    roleguard.SessionLocal.remove()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
