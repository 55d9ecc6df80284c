"""Shared test fixtures."""

import asyncio
import io
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from PIL import Image
from postgrest.exceptions import APIError

from processmaster.config import Settings
from processmaster.containers import AppContainer
from processmaster.domain.auth import AuthenticatedUser, StoredRefreshToken
from processmaster.domain.capture import (
    CaptureSession,
    Interaction,
    NewInteraction,
    Screenshot,
    SessionStatus,
)
from processmaster.domain.guides import (
    Collaborator,
    Guide,
    GuidePage,
    GuideStep,
    NewGuideStep,
    SharedLink,
    Visibility,
)
from processmaster.domain.jobs import JobStatus, ProcessingJob
from processmaster.domain.models import UserRecord
from processmaster.errors import (
    DirectoryServiceError,
    StorageError,
    UpstreamServiceError,
)
from processmaster.services.auth import (
    AuthService,
    DirectoryClient,
    DirectoryEntry,
    LdapCredentialVerifier,
    LocalCredentialVerifier,
    OAuth2Client,
    OAuth2Service,
    RefreshTokenRepository,
)
from processmaster.services.capture import CaptureRepository, CaptureService
from processmaster.services.content import ContentService
from processmaster.services.exports import ExportService
from processmaster.services.guides import (
    GuideRepository,
    GuideService,
    SharedLinkRepository,
)
from processmaster.services.jobs import JobRepository, JobRunner
from processmaster.services.passwords import hash_password
from processmaster.services.pipeline import GuideSynthesisPipeline, ImageFetcher
from processmaster.services.storage import ObjectMetadata, ObjectStore, StoredObject
from processmaster.services.uploads import UploadService
from processmaster.services.users import UserRepository, UserService
from processmaster.services.vision import VisionClient, VisionService

TEST_PASSWORD = "correct horse battery"
TEST_ITERATIONS = 1_000


def png_bytes(width: int = 64, height: int = 48, color: str = "navy") -> bytes:
    """Render a solid PNG with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _duplicate_key(constraint: str) -> APIError:
    return APIError(
        {
            "message": "duplicate key value violates unique constraint",
            "code": "23505",
            "hint": None,
            "details": f"Key already exists ({constraint})",
        }
    )


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user repository for tests."""

    users: dict[UUID, UserRecord] = field(default_factory=dict)
    touched: list[UUID] = field(default_factory=list)

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        return self.users.get(user_id)

    def get_by_email(self, email: str) -> UserRecord | None:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def create_user(  # noqa: PLR0913
        self,
        email: str,
        first_name: str | None,
        last_name: str | None,
        role: str,
        auth_provider: str,
        password_hash: str | None = None,
    ) -> UserRecord:
        if self.get_by_email(email) is not None:
            raise _duplicate_key("users_email_key")
        user = UserRecord(
            id=uuid4(),
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            auth_provider=auth_provider,
            password_hash=password_hash,
            created_at=_now(),
            last_login=_now(),
        )
        self.users[user.id] = user
        return user

    def update_role(self, user_id: UUID, role: str) -> UserRecord:
        user = replace(self.users[user_id], role=role)
        self.users[user_id] = user
        return user

    def touch_last_login(self, user_id: UUID) -> None:
        self.touched.append(user_id)
        self.users[user_id] = replace(self.users[user_id], last_login=_now())


@dataclass
class InMemoryRefreshTokenRepository(RefreshTokenRepository):
    tokens: dict[str, StoredRefreshToken] = field(default_factory=dict)

    def save(self, user_id: UUID, token_hash: str, expires_at: datetime) -> None:
        self.tokens[token_hash] = StoredRefreshToken(
            user_id=user_id, token_hash=token_hash, expires_at=expires_at
        )

    def get(self, token_hash: str) -> StoredRefreshToken | None:
        return self.tokens.get(token_hash)

    def delete(self, token_hash: str) -> None:
        self.tokens.pop(token_hash, None)


@dataclass
class InMemoryCaptureRepository(CaptureRepository):
    """In-memory capture store with per-session counters and unique sequences."""

    sessions: dict[UUID, CaptureSession] = field(default_factory=dict)
    screenshots: list[Screenshot] = field(default_factory=list)
    interactions: list[Interaction] = field(default_factory=list)
    counters: dict[tuple[UUID, str], int] = field(default_factory=dict)
    status_history: list[tuple[UUID, str]] = field(default_factory=list)
    fail_screenshot_insert: bool = False

    def create_session(
        self,
        user_id: UUID,
        title: str,
        description: str | None,
        browser_info: dict[str, object],
        screen_resolution: dict[str, object] | None,
    ) -> CaptureSession:
        session = CaptureSession(
            id=uuid4(),
            user_id=user_id,
            title=title,
            description=description,
            status=SessionStatus.ACTIVE,
            browser_info=browser_info,
            screen_resolution=screen_resolution,
            started_at=_now(),
        )
        self.sessions[session.id] = session
        return session

    def get_session(self, session_id: UUID) -> CaptureSession | None:
        return self.sessions.get(session_id)

    def update_session_status(
        self,
        session_id: UUID,
        status: str,
        stopped_at: datetime | None = None,
        processed_at: datetime | None = None,
    ) -> CaptureSession:
        session = self.sessions[session_id]
        session = replace(
            session,
            status=str(status),
            stopped_at=stopped_at or session.stopped_at,
            processed_at=processed_at or session.processed_at,
        )
        self.sessions[session_id] = session
        self.status_history.append((session_id, str(status)))
        return session

    def next_sequence(self, session_id: UUID, kind: str) -> int:
        rows = self.screenshots if kind == "screenshot" else self.interactions
        current_max = max(
            (row.sequence_number for row in rows if row.session_id == session_id),
            default=0,
        )
        key = (session_id, str(kind))
        self.counters[key] = max(self.counters.get(key, 0), current_max) + 1
        return self.counters[key]

    def create_screenshot(  # noqa: PLR0913
        self,
        session_id: UUID,
        sequence_number: int,
        storage_key: str,
        mime_type: str,
        size_bytes: int,
        width: int | None,
        height: int | None,
        metadata: dict[str, object],
    ) -> Screenshot:
        if self.fail_screenshot_insert:
            raise RuntimeError("Failed to create screenshot")
        if any(
            shot.session_id == session_id and shot.sequence_number == sequence_number
            for shot in self.screenshots
        ):
            raise _duplicate_key("screenshots_capture_session_id_sequence_number_key")
        screenshot = Screenshot(
            id=uuid4(),
            session_id=session_id,
            sequence_number=sequence_number,
            storage_key=storage_key,
            mime_type=mime_type,
            size_bytes=size_bytes,
            width=width,
            height=height,
            metadata=metadata,
            created_at=_now(),
        )
        self.screenshots.append(screenshot)
        return screenshot

    def list_screenshots(self, session_id: UUID) -> list[Screenshot]:
        return sorted(
            (shot for shot in self.screenshots if shot.session_id == session_id),
            key=lambda shot: shot.sequence_number,
        )

    def find_screenshot_by_key(self, storage_key: str) -> Screenshot | None:
        for shot in self.screenshots:
            if shot.storage_key == storage_key:
                return shot
        return None

    def create_interaction(
        self, session_id: UUID, sequence_number: int, interaction: NewInteraction
    ) -> Interaction:
        if any(
            row.session_id == session_id and row.sequence_number == sequence_number
            for row in self.interactions
        ):
            raise _duplicate_key(
                "user_interactions_capture_session_id_sequence_number_key"
            )
        row = Interaction(
            id=uuid4(),
            session_id=session_id,
            sequence_number=sequence_number,
            interaction_type=interaction.interaction_type,
            element_selector=interaction.element_selector,
            element_text=interaction.element_text,
            coordinates=interaction.coordinates,
            input_value=interaction.input_value,
            url=interaction.url,
            screenshot_id=interaction.screenshot_id,
            metadata=interaction.metadata,
            created_at=_now(),
        )
        self.interactions.append(row)
        return row

    def list_interactions(self, session_id: UUID) -> list[Interaction]:
        return sorted(
            (row for row in self.interactions if row.session_id == session_id),
            key=lambda row: row.sequence_number,
        )

    def count_screenshots(self, session_id: UUID) -> int:
        return len(self.list_screenshots(session_id))

    def count_interactions(self, session_id: UUID) -> int:
        return len(self.list_interactions(session_id))


@dataclass
class InMemoryJobRepository(JobRepository):
    """In-memory job store honouring the conditional status transitions."""

    jobs: dict[UUID, ProcessingJob] = field(default_factory=dict)

    def create_job(  # noqa: PLR0913
        self,
        user_id: UUID,
        job_type: str,
        input_data: dict[str, object],
        session_id: UUID | None = None,
        guide_id: UUID | None = None,
        status: str = JobStatus.PENDING,
        output_data: dict[str, object] | None = None,
        processing_time: int | None = None,
    ) -> ProcessingJob:
        now = _now() + timedelta(microseconds=len(self.jobs))
        job = ProcessingJob(
            id=uuid4(),
            user_id=user_id,
            job_type=str(job_type),
            status=str(status),
            input_data=input_data,
            session_id=session_id,
            guide_id=guide_id,
            output_data=output_data,
            processing_time=processing_time,
            created_at=now,
            completed_at=now if status == JobStatus.COMPLETED else None,
        )
        self.jobs[job.id] = job
        return job

    def get_job(self, job_id: UUID) -> ProcessingJob | None:
        return self.jobs.get(job_id)

    def claim_job(self, job_id: UUID) -> ProcessingJob | None:
        job = self.jobs.get(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return None
        return self._save(replace(job, status=JobStatus.RUNNING, started_at=_now()))

    def complete_job(
        self, job_id: UUID, output_data: dict[str, object], processing_time: int
    ) -> ProcessingJob | None:
        job = self.jobs.get(job_id)
        if job is None or job.status != JobStatus.RUNNING:
            return None
        return self._save(
            replace(
                job,
                status=JobStatus.COMPLETED,
                output_data=output_data,
                processing_time=processing_time,
                completed_at=_now(),
            )
        )

    def fail_job(
        self, job_id: UUID, error_message: str, processing_time: int | None = None
    ) -> ProcessingJob | None:
        job = self.jobs.get(job_id)
        if job is None or job.is_terminal:
            return None
        return self._save(
            replace(
                job,
                status=JobStatus.FAILED,
                error_message=error_message,
                processing_time=(
                    job.processing_time if processing_time is None else processing_time
                ),
                completed_at=_now(),
            )
        )

    def latest_job_for_session(self, session_id: UUID) -> ProcessingJob | None:
        matches = [job for job in self.jobs.values() if job.session_id == session_id]
        return max(matches, key=lambda job: job.created_at, default=None)

    def list_pending_jobs(self, limit: int) -> list[ProcessingJob]:
        pending = [job for job in self.jobs.values() if job.status == JobStatus.PENDING]
        return sorted(pending, key=lambda job: job.created_at)[:limit]

    def requeue_stale_jobs(self, started_before: datetime) -> list[ProcessingJob]:
        stale = [
            job
            for job in self.jobs.values()
            if job.status == JobStatus.RUNNING
            and job.started_at is not None
            and job.started_at < started_before
        ]
        return [
            self._save(replace(job, status=JobStatus.PENDING, started_at=None))
            for job in stale
        ]

    def _save(self, job: ProcessingJob) -> ProcessingJob:
        self.jobs[job.id] = job
        return job


@dataclass
class InMemoryGuideRepository(GuideRepository):
    """In-memory guides, steps and collaborator edges."""

    guides: dict[UUID, Guide] = field(default_factory=dict)
    steps: dict[UUID, list[GuideStep]] = field(default_factory=dict)
    collaborators: dict[tuple[UUID, UUID], Collaborator] = field(default_factory=dict)

    def create_guide(  # noqa: PLR0913
        self,
        user_id: UUID,
        title: str,
        description: str | None,
        content: dict[str, object],
        tags: list[str],
        status: str,
        visibility: str,
        difficulty: str | None,
        estimated_time: str | None,
        session_id: UUID | None = None,
    ) -> Guide:
        now = _now() + timedelta(microseconds=len(self.guides))
        guide = Guide(
            id=uuid4(),
            user_id=user_id,
            title=title,
            description=description,
            content=content,
            tags=tags,
            status=str(status),
            visibility=str(visibility),
            difficulty=difficulty,
            estimated_time=estimated_time,
            session_id=session_id,
            created_at=now,
            updated_at=now,
        )
        self.guides[guide.id] = guide
        return guide

    def get_guide(self, guide_id: UUID) -> Guide | None:
        return self.guides.get(guide_id)

    def list_guides(  # noqa: PLR0913
        self,
        viewer_id: UUID,
        page: int,
        limit: int,
        status: str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
    ) -> GuidePage:
        matches = [
            guide
            for guide in self.guides.values()
            if guide.user_id == viewer_id or guide.visibility == Visibility.PUBLIC
        ]
        if status:
            matches = [guide for guide in matches if guide.status == status]
        if search:
            term = search.lower()
            matches = [
                guide
                for guide in matches
                if term in guide.title.lower()
                or term in (guide.description or "").lower()
            ]
        if tags:
            matches = [guide for guide in matches if set(tags) <= set(guide.tags)]
        matches.sort(key=lambda guide: guide.created_at, reverse=True)
        offset = (page - 1) * limit
        return GuidePage(
            guides=matches[offset : offset + limit],
            page=page,
            limit=limit,
            total=len(matches),
        )

    def update_guide(
        self, guide_id: UUID, changes: dict[str, object], expected_version: int
    ) -> Guide | None:
        guide = self.guides.get(guide_id)
        if guide is None or guide.version != expected_version:
            return None
        updated = replace(
            guide, **changes, version=expected_version + 1, updated_at=_now()
        )
        self.guides[guide_id] = updated
        return updated

    def delete_guide(self, guide_id: UUID) -> None:
        self.guides.pop(guide_id, None)
        self.steps.pop(guide_id, None)

    def create_steps(
        self, guide_id: UUID, steps: list[NewGuideStep]
    ) -> list[GuideStep]:
        created = [
            GuideStep(
                id=uuid4(),
                guide_id=guide_id,
                step_number=step.step_number,
                title=step.title,
                description=step.description,
                action_type=step.action_type,
                element_description=step.element_description,
                screenshot_id=step.screenshot_id,
                coordinates=step.coordinates,
                tips=list(step.tips),
                warnings=list(step.warnings),
            )
            for step in steps
        ]
        self.steps.setdefault(guide_id, []).extend(created)
        return created

    def list_steps(self, guide_id: UUID) -> list[GuideStep]:
        return sorted(self.steps.get(guide_id, []), key=lambda step: step.step_number)

    def increment_view_count(self, guide_id: UUID) -> int:
        guide = self.guides[guide_id]
        self.guides[guide_id] = replace(guide, view_count=guide.view_count + 1)
        return guide.view_count + 1

    def list_collaborators(self, guide_id: UUID) -> list[Collaborator]:
        return [edge for key, edge in self.collaborators.items() if key[0] == guide_id]

    def get_collaborator(self, guide_id: UUID, user_id: UUID) -> Collaborator | None:
        return self.collaborators.get((guide_id, user_id))

    def upsert_collaborator(
        self, guide_id: UUID, user_id: UUID, role: str, added_by: UUID
    ) -> Collaborator:
        edge = Collaborator(
            guide_id=guide_id, user_id=user_id, role=role, added_at=_now()
        )
        self.collaborators[(guide_id, user_id)] = edge
        return edge

    def remove_collaborator(self, guide_id: UUID, user_id: UUID) -> bool:
        return self.collaborators.pop((guide_id, user_id), None) is not None


@dataclass
class InMemorySharedLinkRepository(SharedLinkRepository):
    links: dict[str, SharedLink] = field(default_factory=dict)

    def create_link(  # noqa: PLR0913
        self,
        guide_id: UUID,
        token: str,
        created_by: UUID,
        password_hash: str | None,
        expires_at: datetime | None,
        max_views: int | None,
    ) -> SharedLink:
        link = SharedLink(
            id=uuid4(),
            guide_id=guide_id,
            token=token,
            created_by=created_by,
            password_hash=password_hash,
            expires_at=expires_at,
            max_views=max_views,
            created_at=_now(),
        )
        self.links[token] = link
        return link

    def get_by_token(self, token: str) -> SharedLink | None:
        return self.links.get(token)

    def register_view(self, link_id: UUID) -> bool:
        for token, link in self.links.items():
            if link.id != link_id:
                continue
            if link.max_views is not None and link.view_count >= link.max_views:
                return False
            self.links[token] = replace(link, view_count=link.view_count + 1)
            return True
        return False


@dataclass
class FakeObjectStore(ObjectStore):
    """Dictionary-backed object store."""

    objects: dict[str, tuple[bytes, str, dict[str, str]]] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)

    async def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        self.objects[key] = (data, content_type, dict(metadata or {}))
        return StoredObject(
            key=key,
            url=self.public_url(key),
            size_bytes=len(data),
            content_type=content_type,

        )

    async def get_object(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageError(f"Object {key} not found")
        return self.objects[key][0]

    async def delete_object(self, key: str) -> None:
        self.objects.pop(key, None)
        self.deleted.append(key)

    async def head_object(self, key: str) -> ObjectMetadata | None:
        if key not in self.objects:
            return None
        data, content_type, metadata = self.objects[key]
        return ObjectMetadata(
            key=key,
            size_bytes=len(data),
            content_type=content_type,
            last_modified=_now(),
            metadata=metadata,
        )

    def presigned_download_url(self, key: str, expires_in: int) -> str:
        return f"https://signed.test/{key}?op=get&expires={expires_in}"

    def presigned_upload_url(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: dict[str, str] | None = None,
    ) -> str:
        return f"https://signed.test/{key}?op=put&expires={expires_in}"

    def public_url(self, key: str) -> str:
        return f"https://cdn.test/{key}"


@dataclass
class FakeVisionClient(VisionClient):
    """Scripted vision client; calls listed in fail_on_calls raise."""

    analyses: list[dict[str, object]] = field(default_factory=list)
    fail_on_calls: set[int] = field(default_factory=set)
    completion: str = "Open the app, fill in the form and submit it."
    delay: float = 0.0
    extract_calls: list[dict[str, object]] = field(default_factory=list)
    complete_calls: list[dict[str, object]] = field(default_factory=list)

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        image_data_url: str,
        schema: dict[str, object],
        prompt: str,
        temperature: float,
        max_output_tokens: int,
    ) -> dict[str, object]:
        index = len(self.extract_calls)
        self.extract_calls.append(
            {
                "model": model,
                "image_data_url": image_data_url,
                "prompt": prompt,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if index in self.fail_on_calls:
            raise RuntimeError("model unavailable")
        if index < len(self.analyses):
            return self.analyses[index]
        return {
            "action": "click",
            "element": f"Button {index + 1}",
            "description": f"Click button {index + 1}",
            "coordinates": {"x": 10 * (index + 1), "y": 20},
            "confidence": 0.9,
        }

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        self.complete_calls.append(
            {
                "model": model,
                "prompt": prompt,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        return self.completion


@dataclass
class FakeDirectoryClient(DirectoryClient):
    """Directory with fixed accounts keyed by username."""

    accounts: dict[str, tuple[str, DirectoryEntry]] = field(default_factory=dict)
    unavailable: bool = False

    async def authenticate(self, username: str, password: str) -> DirectoryEntry | None:
        if self.unavailable:
            raise DirectoryServiceError("LDAP directory is unavailable")
        account = self.accounts.get(username)
        if account is None or account[0] != password:
            return None
        return account[1]


@dataclass
class FakeOAuth2Client(OAuth2Client):
    tokens: dict[str, object] = field(default_factory=lambda: {"access_token": "at-1"})
    userinfo: dict[str, object] = field(
        default_factory=lambda: {
            "email": "Oauth.User@Example.com",
            "given_name": "Oauth",
            "family_name": "User",
        }
    )
    exchanged: list[tuple[str, str]] = field(default_factory=list)

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, object]:
        self.exchanged.append((code, redirect_uri))
        return self.tokens

    async def fetch_userinfo(self, access_token: str) -> dict[str, object]:
        return self.userinfo


@dataclass
class FakeImageFetcher(ImageFetcher):
    images: dict[str, bytes] = field(default_factory=dict)

    async def fetch(self, url: str) -> bytes:
        if url not in self.images:
            raise UpstreamServiceError(f"Failed to fetch image: {url}")
        return self.images[url]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        jwt_secret="test-jwt-secret-that-is-long-enough-for-hs256",
        openai_api_key="openai-key",
        password_hash_iterations=TEST_ITERATIONS,
        oauth2_issuer="https://idp.example.com",
        oauth2_client_id="client-id",
        oauth2_client_secret="client-secret",
        oauth2_redirect_uri="https://app.example.com/auth/callback",
        web_base_url="https://app.example.com",
        environment="test",
    )


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def vision_client() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def directory() -> FakeDirectoryClient:
    return FakeDirectoryClient()


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    user_repository: InMemoryUserRepository,
    vision_client: FakeVisionClient,
    object_store: FakeObjectStore,
    directory: FakeDirectoryClient,
) -> AppContainer:
    job_repository = InMemoryJobRepository()
    user_service = UserService(user_repository)
    auth_service = AuthService(
        users=user_service,
        refresh_tokens=InMemoryRefreshTokenRepository(),
        verifiers={
            "local": LocalCredentialVerifier(user_repository),
            "ldap": LdapCredentialVerifier(directory, user_service),
        },
        secret=settings.jwt_secret,
    )
    oauth2_service = OAuth2Service(
        client=FakeOAuth2Client(),
        auth=auth_service,
        users=user_service,
        issuer=str(settings.oauth2_issuer),
        client_id=str(settings.oauth2_client_id),
        redirect_uri=str(settings.oauth2_redirect_uri),
    )
    vision_service = VisionService(client=vision_client, model=settings.openai_model)
    capture_service = CaptureService(
        repository=InMemoryCaptureRepository(), object_store=object_store
    )
    guide_service = GuideService(
        guides=InMemoryGuideRepository(),
        links=InMemorySharedLinkRepository(),
        users=user_repository,
        web_base_url=settings.web_base_url,
        password_iterations=TEST_ITERATIONS,
    )
    job_runner = JobRunner(repository=job_repository, timeout_seconds=5)
    pipeline = GuideSynthesisPipeline(
        capture=capture_service,
        guides=guide_service,
        jobs=job_repository,
        runner=job_runner,
        vision=vision_service,
        image_fetcher=FakeImageFetcher(),
        object_store=object_store,
    )
    pipeline.register_handlers()

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        user_service=user_service,
        auth_service=auth_service,
        oauth2_service=oauth2_service,
        capture_service=capture_service,
        guide_service=guide_service,
        export_service=ExportService(guides=guide_service, object_store=object_store),
        upload_service=UploadService(
            object_store=object_store,
            capture=capture_service,
            max_upload_bytes=settings.max_upload_bytes,
        ),
        vision_service=vision_service,
        content_service=ContentService(vision=vision_service, jobs=job_repository),
        job_runner=job_runner,
        pipeline=pipeline,
        close_resources=close_resources,
    )


def register_user(
    repository: InMemoryUserRepository,
    email: str = "owner@example.com",
    role: str = "user",
    password: str = TEST_PASSWORD,
) -> UserRecord:
    """Create a local user whose password is TEST_PASSWORD."""
    return repository.create_user(
        email=email,
        first_name="Test",
        last_name="User",
        role=role,
        auth_provider="local",
        password_hash=hash_password(password, TEST_ITERATIONS),
    )


def as_caller(user: UserRecord) -> AuthenticatedUser:
    return AuthenticatedUser(id=user.id, email=user.email, role=user.role)


def auth_headers(container: AppContainer, user: UserRecord) -> dict[str, str]:
    tokens = container.auth_service.issue_tokens(user)
    return {"Authorization": f"Bearer {tokens.access_token}"}
