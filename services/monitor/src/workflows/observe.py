"""Steps shared by the snapshot workflows: load, fetch, persist, classify."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel
import structlog

from src.change_detection.types import CertificateSnapshot, ProviderSnapshot, RegistrationSnapshot
from src.fetchers.certificates import fetch_certificate_chain
from src.fetchers.dns import fetch_dns_records
from src.fetchers.headers import fetch_headers
from src.fetchers.types import (
    CertificateInfo,
    DnsRecords,
    FetchOutcome,
    HeadersResult,
    RegistrationRecord,
)
from src.models.artifact import ArtifactKind
from src.repositories import artifacts as artifacts_repo
from src.repositories import providers as providers_repo
from src.repositories import snapshots as snapshots_repo
from src.repositories import tracked_domains as tracked_repo
from src.workflow.errors import FETCH_ERROR, TIMEOUT, RetryableError
from src.workflow.runtime import WorkflowContext

logger = structlog.get_logger()

TRANSIENT_CODES = {TIMEOUT, FETCH_ERROR}


class Target(BaseModel):
    """Everything a run needs to know about the tracked domain and its baseline."""

    tracked_domain_id: str
    domain_id: str
    domain: str
    user_id: str
    user_email: str
    notification_overrides: dict[str, Any] = {}
    muted: bool = False
    initialized: bool = False
    registration: RegistrationSnapshot = RegistrationSnapshot()
    providers: ProviderSnapshot = ProviderSnapshot()
    certificate: CertificateSnapshot = CertificateSnapshot()


@dataclass
class Observation:
    """Current values per category; None means no data this run."""

    registration: RegistrationSnapshot | None = None
    providers: ProviderSnapshot | None = None
    certificate: CertificateSnapshot | None = None
    observed_at: datetime | None = None


async def load_target(deps, tracked_domain_id: str) -> Target | None:
    """The tracked domain with its baseline, or None when either is gone."""
    async with deps.session_maker() as session:
        info = await tracked_repo.get_info(session, tracked_domain_id)
        snapshot = await snapshots_repo.get(session, tracked_domain_id)
    if info is None or snapshot is None:
        return None

    return Target(
        tracked_domain_id=tracked_domain_id,
        domain_id=info.domain_id,
        domain=info.domain_name,
        user_id=info.user_id,
        user_email=info.user_email,
        notification_overrides=info.notification_overrides,
        muted=info.muted,
        initialized=snapshot.initialized_at is not None,
        registration=RegistrationSnapshot.model_validate(snapshot.registration or {}),
        providers=ProviderSnapshot(
            dns_provider_id=snapshot.dns_provider_id,
            hosting_provider_id=snapshot.hosting_provider_id,
            email_provider_id=snapshot.email_provider_id,
        ),
        certificate=CertificateSnapshot.model_validate(snapshot.certificate or {}),
    )


def _unwrap(outcome: FetchOutcome, what: str) -> Any:
    if outcome.ok:
        return outcome.data
    if outcome.error_code in TRANSIENT_CODES:
        raise RetryableError(f"{what} fetch failed", code=outcome.error_code)
    return None


async def fetch_registration(deps, domain: str) -> RegistrationRecord | None:
    return _unwrap(await deps.registration.fetch(domain), "registration")


async def fetch_dns(deps, domain: str) -> DnsRecords | None:
    return _unwrap(await fetch_dns_records(deps.resolver, domain), "dns")


async def fetch_homepage_headers(deps, domain: str) -> HeadersResult | None:
    return _unwrap(await fetch_headers(deps.http_client, domain), "headers")


async def fetch_certificates(deps, domain: str) -> list[CertificateInfo] | None:
    return _unwrap(
        await fetch_certificate_chain(domain, timeout=deps.settings.tls_timeout), "certificates"
    )


async def _fetch_step(ctx: WorkflowContext, name: str, fn, domain: str) -> Any:
    """A fetch step whose retries ran out degrades to "no data"."""
    try:
        return await ctx.step(name, fn, ctx.deps, domain)
    except RetryableError as e:
        logger.warning("fetch_unavailable", step=name, domain=domain, error_code=e.code)
        return None


async def persist_artifacts(deps, domain_id: str, payloads: dict[str, Any], fetched_at: str) -> list[str]:
    """Upsert every fetched artifact; returns the kinds written."""
    written = []
    async with deps.session_maker() as session:
        for kind, payload in payloads.items():
            if payload is None:
                continue
            await artifacts_repo.upsert(
                session,
                domain_id,
                ArtifactKind(kind),
                payload if isinstance(payload, dict) else {"items": payload},
                datetime.fromisoformat(fetched_at),
            )
            written.append(kind)
    return written


async def resolve_providers(deps, dns: dict, headers: dict) -> ProviderSnapshot:
    records = DnsRecords.model_validate(dns)
    homepage = HeadersResult.model_validate(headers)
    dns_id, hosting_id, email_id = await asyncio.gather(
        deps.providers.dns(records),
        deps.providers.hosting(homepage, records),
        deps.providers.email(records),
    )
    return ProviderSnapshot(
        dns_provider_id=dns_id, hosting_provider_id=hosting_id, email_provider_id=email_id
    )


async def resolve_registrar(deps, name: str | None, url: str | None) -> str | None:
    return await deps.providers.registrar(name, url)


async def resolve_certificate_authority(deps, issuer: str | None) -> str | None:
    return await deps.providers.certificate_authority(issuer)


async def provider_names(deps, provider_ids: list[str | None]) -> dict[str, str]:
    async with deps.session_maker() as session:
        return await providers_repo.get_names(session, set(provider_ids))


async def observe(ctx: WorkflowContext, target: Target) -> Observation:
    """Fetch the four fact sources, persist them and derive current values."""
    domain = target.domain
    registration, dns, headers, certificates = await asyncio.gather(
        _fetch_step(ctx, "fetch-registration", fetch_registration, domain),
        _fetch_step(ctx, "fetch-dns", fetch_dns, domain),
        _fetch_step(ctx, "fetch-headers", fetch_homepage_headers, domain),
        _fetch_step(ctx, "fetch-certificates", fetch_certificates, domain),
    )
    observed_at = await ctx.timestamp("fetched-at")
    fetched_at = observed_at.isoformat()

    payloads = {
        ArtifactKind.REGISTRATION.value: registration,
        ArtifactKind.DNS.value: dns,
        ArtifactKind.HEADERS.value: headers,
        ArtifactKind.CERTIFICATES.value: certificates,
    }
    await ctx.step("persist-artifacts", persist_artifacts, ctx.deps, target.domain_id, payloads, fetched_at)

    observation = Observation(observed_at=observed_at)

    # Provider diffs need both halves; a site that is down says nothing about its DNS host
    if dns is not None and headers is not None:
        providers = ProviderSnapshot.model_validate(
            await ctx.step("resolve-providers", resolve_providers, ctx.deps, dns, headers)
        )
        await ctx.step(
            "persist-hosting",
            persist_artifacts,
            ctx.deps,
            target.domain_id,
            {ArtifactKind.HOSTING.value: providers.model_dump()},
            fetched_at,
        )
        observation.providers = providers

    if registration is not None and registration["is_registered"]:
        record = RegistrationRecord.model_validate(registration)
        registrar_id = await ctx.step(
            "resolve-registrar",
            resolve_registrar,
            ctx.deps,
            record.registrar_name,
            record.registrar_url,
        )
        observation.registration = RegistrationSnapshot(
            registrar_provider_id=registrar_id,
            nameservers=record.nameservers,
            transfer_lock=record.transfer_lock,
            statuses=record.statuses,
        )

    if certificates:
        leaf = CertificateInfo.model_validate(certificates[0])
        ca_id = await ctx.step("resolve-ca", resolve_certificate_authority, ctx.deps, leaf.issuer)
        observation.certificate = CertificateSnapshot(
            ca_provider_id=ca_id, issuer=leaf.issuer, valid_to=leaf.valid_to
        )

    return observation


async def commit_registration(deps, tracked_domain_id: str, value: RegistrationSnapshot) -> None:
    async with deps.session_maker() as session:
        await snapshots_repo.save_registration(session, tracked_domain_id, value)


async def commit_providers(deps, tracked_domain_id: str, value: ProviderSnapshot) -> None:
    async with deps.session_maker() as session:
        await snapshots_repo.save_providers(session, tracked_domain_id, value)


async def commit_certificate(deps, tracked_domain_id: str, value: CertificateSnapshot) -> None:
    async with deps.session_maker() as session:
        await snapshots_repo.save_certificate(session, tracked_domain_id, value)


async def commit_baseline(ctx: WorkflowContext, target: Target, observation: Observation) -> list[str]:
    """Write every observed category and mark the baseline initialized."""
    committed = []
    if observation.registration is not None:
        await ctx.step(
            "baseline-registration", commit_registration, ctx.deps,
            target.tracked_domain_id, observation.registration,
        )
        committed.append("registration")
    if observation.providers is not None:
        await ctx.step(
            "baseline-providers", commit_providers, ctx.deps,
            target.tracked_domain_id, observation.providers,
        )
        committed.append("providers")
    if observation.certificate is not None:
        await ctx.step(
            "baseline-certificate", commit_certificate, ctx.deps,
            target.tracked_domain_id, observation.certificate,
        )
        committed.append("certificate")

    initialized_at = await ctx.timestamp("initialized-at")
    await ctx.step("mark-initialized", mark_initialized, ctx.deps, target.tracked_domain_id, initialized_at.isoformat())
    logger.info("snapshot_baseline_initialized", categories=committed)
    return committed


async def mark_initialized(deps, tracked_domain_id: str, now: str) -> None:
    async with deps.session_maker() as session:
        await snapshots_repo.mark_initialized(session, tracked_domain_id, datetime.fromisoformat(now))
