"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from processmaster.adapters.bedrock_vision_client import BedrockVisionClient
from processmaster.adapters.http_image_fetcher import HttpxImageFetcher
from processmaster.adapters.ldap_directory import Ldap3DirectoryClient
from processmaster.adapters.oauth2_client import HttpxOAuth2Client
from processmaster.adapters.openai_vision_client import OpenAIVisionClient
from processmaster.adapters.s3_object_store import S3ObjectStore
from processmaster.adapters.supabase_capture_repository import (
    SupabaseCaptureRepository,
)
from processmaster.adapters.supabase_guide_repository import SupabaseGuideRepository
from processmaster.adapters.supabase_job_repository import SupabaseJobRepository
from processmaster.adapters.supabase_refresh_token_repository import (
    SupabaseRefreshTokenRepository,
)
from processmaster.adapters.supabase_shared_link_repository import (
    SupabaseSharedLinkRepository,
)
from processmaster.adapters.supabase_user_repository import SupabaseUserRepository
from processmaster.config import Settings, parse_enabled_providers
from processmaster.services.auth import (
    AuthService,
    CredentialVerifier,
    LdapCredentialVerifier,
    LocalCredentialVerifier,
    OAuth2Service,
)
from processmaster.services.capture import CaptureService
from processmaster.services.content import ContentService
from processmaster.services.exports import ExportService
from processmaster.services.guides import GuideService
from processmaster.services.jobs import JobRunner
from processmaster.services.pipeline import GuideSynthesisPipeline
from processmaster.services.uploads import UploadService
from processmaster.services.users import UserService
from processmaster.services.vision import VisionClient, VisionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    user_service: UserService
    auth_service: AuthService
    oauth2_service: OAuth2Service | None
    capture_service: CaptureService
    guide_service: GuideService
    export_service: ExportService
    upload_service: UploadService
    vision_service: VisionService
    content_service: ContentService
    job_runner: JobRunner
    pipeline: GuideSynthesisPipeline
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:  # noqa: PLR0915
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    user_repository = SupabaseUserRepository(supabase_client)
    capture_repository = SupabaseCaptureRepository(supabase_client)
    guide_repository = SupabaseGuideRepository(supabase_client)
    link_repository = SupabaseSharedLinkRepository(supabase_client)
    job_repository = SupabaseJobRepository(supabase_client)
    refresh_repository = SupabaseRefreshTokenRepository(supabase_client)

    object_store = S3ObjectStore.create(
        bucket=resolved_settings.s3_bucket,
        region=resolved_settings.aws_region,
        endpoint_url=resolved_settings.s3_endpoint_url,
        cdn_domain=resolved_settings.cloudfront_domain,
    )
    closers: list[Callable[[], Awaitable[None]]] = []

    vision_client: VisionClient
    if resolved_settings.vision_provider == "bedrock":
        vision_client = BedrockVisionClient.create(resolved_settings.aws_region)
        model = resolved_settings.bedrock_model_id
    else:
        openai_client = OpenAIVisionClient.create(resolved_settings.openai_api_key)
        closers.append(openai_client.close)
        vision_client = openai_client
        model = resolved_settings.openai_model
    vision_service = VisionService(
        client=vision_client,
        model=model,
        temperature=resolved_settings.vision_temperature,
        analysis_max_tokens=resolved_settings.analysis_max_tokens,
        summary_max_tokens=resolved_settings.summary_max_tokens,
        text_max_tokens=resolved_settings.text_max_tokens,
    )

    user_service = UserService(user_repository)
    verifiers: dict[str, CredentialVerifier] = {}
    for provider in parse_enabled_providers(resolved_settings.auth_providers):
        if provider == "local":
            verifiers["local"] = LocalCredentialVerifier(user_repository)
        elif provider == "ldap" and resolved_settings.ldap_url:
            directory = Ldap3DirectoryClient(
                url=resolved_settings.ldap_url,
                bind_dn=resolved_settings.ldap_bind_dn or "",
                bind_password=resolved_settings.ldap_bind_password or "",
                search_base=resolved_settings.ldap_search_base or "",
                search_filter=resolved_settings.ldap_search_filter,
            )
            verifiers["ldap"] = LdapCredentialVerifier(directory, user_service)
    auth_service = AuthService(
        users=user_service,
        refresh_tokens=refresh_repository,
        verifiers=verifiers,
        secret=resolved_settings.jwt_secret,
        algorithm=resolved_settings.jwt_algorithm,
        access_ttl_seconds=resolved_settings.access_token_ttl_seconds,
        refresh_ttl_seconds=resolved_settings.refresh_token_ttl_seconds,
        default_provider=resolved_settings.default_auth_provider,
    )
    oauth2_service = None
    if (
        resolved_settings.oauth2_issuer
        and resolved_settings.oauth2_client_id
        and resolved_settings.oauth2_client_secret
        and resolved_settings.oauth2_redirect_uri
    ):
        oauth2_client = HttpxOAuth2Client.create(
            issuer=resolved_settings.oauth2_issuer,
            client_id=resolved_settings.oauth2_client_id,
            client_secret=resolved_settings.oauth2_client_secret,
        )
        closers.append(oauth2_client.close)
        oauth2_service = OAuth2Service(
            client=oauth2_client,
            auth=auth_service,
            users=user_service,
            issuer=resolved_settings.oauth2_issuer,
            client_id=resolved_settings.oauth2_client_id,
            redirect_uri=resolved_settings.oauth2_redirect_uri,
            state_ttl_seconds=resolved_settings.oauth_state_ttl_seconds,
        )

    capture_service = CaptureService(
        repository=capture_repository,
        object_store=object_store,
        max_width=resolved_settings.screenshot_max_width,
        max_height=resolved_settings.screenshot_max_height,
    )
    guide_service = GuideService(
        guides=guide_repository,
        links=link_repository,
        users=user_repository,
        web_base_url=resolved_settings.web_base_url,
        password_iterations=resolved_settings.password_hash_iterations,
    )
    export_service = ExportService(
        guides=guide_service,
        object_store=object_store,
        download_ttl=resolved_settings.download_url_ttl_seconds,
    )
    upload_service = UploadService(
        object_store=object_store,
        capture=capture_service,
        max_upload_bytes=resolved_settings.max_upload_bytes,
        upload_ttl=resolved_settings.upload_url_ttl_seconds,
        download_ttl=resolved_settings.download_url_ttl_seconds,
    )
    content_service = ContentService(
        vision=vision_service,
        jobs=job_repository,
        provider=resolved_settings.vision_provider,
        max_files=resolved_settings.analyze_max_files,
    )
    job_runner = JobRunner(
        repository=job_repository,
        workers=resolved_settings.job_workers,
        queue_size=resolved_settings.job_queue_size,
        timeout_seconds=resolved_settings.job_timeout_seconds,
        stale_after_seconds=resolved_settings.stale_job_seconds,
        sweep_interval_seconds=resolved_settings.job_sweep_interval_seconds,
    )
    image_fetcher = HttpxImageFetcher.create(resolved_settings.max_upload_bytes)
    closers.append(image_fetcher.close)
    pipeline = GuideSynthesisPipeline(
        capture=capture_service,
        guides=guide_service,
        jobs=job_repository,
        runner=job_runner,
        vision=vision_service,
        image_fetcher=image_fetcher,
        object_store=object_store,
        batch_max_images=resolved_settings.batch_max_images,
    )
    pipeline.register_handlers()

    async def close_resources() -> None:
        for close in closers:
            await close()

    return AppContainer(
        settings=resolved_settings,
        user_service=user_service,
        auth_service=auth_service,
        oauth2_service=oauth2_service,
        capture_service=capture_service,
        guide_service=guide_service,
        export_service=export_service,
        upload_service=upload_service,
        vision_service=vision_service,
        content_service=content_service,
        job_runner=job_runner,
        pipeline=pipeline,
        close_resources=close_resources,
    )
