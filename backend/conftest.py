from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("MATERIAL_USAGE_ATTRIBUTION", "fifo")

from sitedb.database import Base  # noqa: E402
from sitedb.apps.accounts import models as account_models  # noqa: E402
from sitedb.apps.sites import models as site_models  # noqa: E402
from sitedb.apps.materials import models as material_models  # noqa: E402
from sitedb.apps.purchases import models as purchase_models  # noqa: E402
from sitedb.apps.receipts import models as receipt_models  # noqa: E402
from sitedb.apps.work_progress import models as work_progress_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.Organization.__table__,
            account_models.User.__table__,
            site_models.Site.__table__,
            material_models.MaterialMaster.__table__,
            material_models.MaterialSiteAllocation.__table__,
            purchase_models.MaterialPurchase.__table__,
            receipt_models.MaterialReceipt.__table__,
            work_progress_models.WorkProgressEntry.__table__,
            work_progress_models.WorkProgressMaterial.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def org(db_session):
    organization = account_models.Organization(name="Acme Builders", slug="acme")
    db_session.add(organization)
    db_session.commit()
    db_session.refresh(organization)
    return organization


@pytest.fixture()
def other_org(db_session):
    organization = account_models.Organization(name="Rival Construction", slug="rival")
    db_session.add(organization)
    db_session.commit()
    db_session.refresh(organization)
    return organization


@pytest.fixture()
def user(db_session, org):
    member = account_models.User(
        organization_id=org.id,
        email="pm@acme.test",
        full_name="Project Manager",
        role=account_models.OrganizationRole.PROJECT_MANAGER,
        is_active=True,
    )
    db_session.add(member)
    db_session.commit()
    db_session.refresh(member)
    return member
