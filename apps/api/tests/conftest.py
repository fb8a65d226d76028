"""Shared fixtures: in-memory SQLite, a fake object store and a controllable clock."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from supportdesk.core.config import get_attachment_config
from supportdesk.core.errors import ObjectStoreError
from supportdesk.core.settings import Settings
from supportdesk.core.storage import ObjectProbe, ObjectStoreGateway, SignedUrl
from supportdesk.models.user import Base, User
from supportdesk.models.ticket import Ticket
from supportdesk.models.comment import TicketComment
import supportdesk.models.attachment  # noqa: F401
from supportdesk.services.attachment_repository import SqlAttachmentRepository
from supportdesk.services.attachment_service import AttachmentService


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeObjectStore(ObjectStoreGateway):
    """Records every call; objects are modelled as key -> size."""

    def __init__(self, clock):
        self.clock = clock
        self.objects: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.delete_failures = 0
        self.probe_error: Exception | None = None

    def calls_of(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]

    def presign_upload(self, bucket, key, content_type, size, ttl):
        self.calls.append(("presign_upload", bucket, key, content_type, size))
        return SignedUrl(url=f"https://s3.test/{bucket}/{key}?X-Amz-Signature=put", expires_at=self.clock() + ttl)

    def presign_download(self, bucket, key, response_content_type, ttl):
        self.calls.append(("presign_download", bucket, key, response_content_type))
        return SignedUrl(url=f"https://s3.test/{bucket}/{key}?X-Amz-Signature=get", expires_at=self.clock() + ttl)

    def probe(self, bucket, key):
        self.calls.append(("probe", bucket, key))
        if self.probe_error is not None:
            raise self.probe_error
        if key not in self.objects:
            return ObjectProbe(exists=False)
        return ObjectProbe(exists=True, size=self.objects[key])

    def delete(self, bucket, key):
        self.calls.append(("delete", bucket, key))
        if self.delete_failures > 0:
            self.delete_failures -= 1
            raise ObjectStoreError(f"simulated delete failure for {key}")
        self.objects.pop(key, None)


@pytest.fixture
def settings_obj():
    return Settings(
        _env_file=None,
        OBJECT_STORAGE_BUCKET="desk-attachments",
        ATTACHMENT_MAX_FILE_SIZE_BYTES=10 * 1024 * 1024,
        ATTACHMENT_TICKET_MAX_COUNT=3,
        ATTACHMENT_COMMENT_MAX_COUNT=2,
        ATTACHMENT_UPLOAD_URL_TTL_SECONDS=300,
        ATTACHMENT_DOWNLOAD_URL_TTL_SECONDS=120,
        ATTACHMENT_MAX_FILE_NAME_LENGTH=120,
        ATTACHMENT_ALLOWED_MIME_TYPES="image/png, application/pdf, text/plain; charset=utf-8",
        ATTACHMENT_PENDING_MAX_AGE_SECONDS=3600,
        ATTACHMENT_DELETE_MAX_ATTEMPTS=3,
        ATTACHMENT_DELETE_RETRY_DELAY_SECONDS=0.25,
    )


@pytest.fixture
def config(settings_obj):
    return get_attachment_config(settings_obj)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    return FakeObjectStore(clock)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def seed(session):
    """A requester, an agent, one ticket and one comment on it."""
    requester = User(emp_no="30001", kor_name="Requester", role="requester")
    agent = User(emp_no="30002", kor_name="Agent", role="agent")
    outsider = User(emp_no="30003", kor_name="Other", role="requester")
    session.add_all([requester, agent, outsider])
    session.flush()
    ticket = Ticket(title="VPN broken", description="cannot connect", requester_emp_no=requester.emp_no)
    session.add(ticket)
    session.flush()
    comment = TicketComment(ticket_id=ticket.id, author_emp_no=agent.emp_no, body="please attach logs")
    session.add(comment)
    session.commit()
    return {
        "requester": requester,
        "agent": agent,
        "outsider": outsider,
        "ticket_id": ticket.id,
        "comment_id": comment.id,
        "requester_id": requester.id,
    }


@pytest.fixture
def repository(session):
    return SqlAttachmentRepository(session)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(repository, store, config, clock, sleeps):
    return AttachmentService(repository, store, config, clock=clock, sleep=sleeps.append)
