"""Human-readable titles and messages for change events."""

from datetime import date
import hashlib
import json

from pydantic import BaseModel

from .status import normalize_status
from .types import CertificateChange, ProviderChange, RegistrationChange

NAMESERVERS_SHOWN = 2


def registration_label(change: RegistrationChange) -> str:
    if change.registrar_changed:
        return "Registrar"
    if change.transfer_lock_changed:
        return "Transfer lock"
    if change.nameservers_changed:
        return "Nameservers"
    return "Registration"


def provider_label(change: ProviderChange) -> str:
    if change.dns_changed:
        return "DNS provider"
    if change.hosting_changed:
        return "Hosting"
    if change.email_changed:
        return "Email provider"
    return "Provider"


def certificate_label(change: CertificateChange) -> str:
    return "Certificate authority" if change.ca_changed else "Certificate"


def compose_title(label: str, domain: str) -> str:
    return f"{label} changed for {domain}"


def compose_message(details: list[str], fallback: str) -> str:
    return f"{'. '.join(details)}." if details else fallback


def _transition(label: str, previous: str | None, current: str | None, removed_label: str | None = None) -> str | None:
    if previous and current:
        return f"{label} changed from {previous} to {current}"
    if current:
        return f"{label} set to {current}"
    if previous:
        return f"{removed_label or label} {previous} removed"
    return None


def _nameserver_list(hosts: list[str]) -> str:
    shown = ", ".join(hosts[:NAMESERVERS_SHOWN])
    extra = len(hosts) - NAMESERVERS_SHOWN
    return f"{shown} (+{extra} more)" if extra > 0 else shown


def registration_details(change: RegistrationChange, names: dict[str, str]) -> list[str]:
    details: list[str] = []
    previous, current = change.previous, change.current

    if change.registrar_changed:
        line = _transition(
            "Registrar",
            names.get(previous.registrar_provider_id, previous.registrar_provider_id),
            names.get(current.registrar_provider_id, current.registrar_provider_id),
        )
        if line:
            details.append(line)

    if change.transfer_lock_changed:
        if current.transfer_lock is True:
            details.append("Transfer lock enabled")
        elif current.transfer_lock is False:
            details.append("Transfer lock disabled")

    if change.nameservers_changed and current.nameservers:
        verb = "changed to" if previous.nameservers else "set to"
        details.append(f"Nameservers {verb} {_nameserver_list(current.nameservers)}")

    if change.statuses_changed:
        previous_norm = {normalize_status(s) for s in previous.statuses}
        current_norm = {normalize_status(s) for s in current.statuses}
        added = [s for s in current.statuses if normalize_status(s) not in previous_norm]
        removed = [s for s in previous.statuses if normalize_status(s) not in current_norm]
        if added:
            details.append(f"Status added: {', '.join(added)}")
        if removed:
            details.append(f"Status removed: {', '.join(removed)}")

    return details


def provider_details(change: ProviderChange, names: dict[str, str]) -> list[str]:
    details: list[str] = []
    previous, current = change.previous, change.current
    fields = (
        (change.dns_changed, "DNS provider", None, previous.dns_provider_id, current.dns_provider_id),
        (change.hosting_changed, "Hosting", "Hosting provider", previous.hosting_provider_id, current.hosting_provider_id),
        (change.email_changed, "Email provider", None, previous.email_provider_id, current.email_provider_id),
    )
    for changed, label, removed_label, previous_id, current_id in fields:
        if not changed:
            continue
        line = _transition(
            label,
            names.get(previous_id) if previous_id else None,
            names.get(current_id) if current_id else None,
            removed_label,
        )
        if line:
            details.append(line)
    return details


def certificate_details(change: CertificateChange, names: dict[str, str]) -> list[str]:
    details: list[str] = []
    previous, current = change.previous, change.current

    if change.ca_changed:
        prev_name = names.get(previous.ca_provider_id) if previous.ca_provider_id else None
        next_name = names.get(current.ca_provider_id) if current.ca_provider_id else None
        if prev_name and next_name:
            details.append(f"Certificate authority changed from {prev_name} to {next_name}")
        elif next_name:
            details.append(f"Certificate authority set to {next_name}")

    if change.issuer_changed:
        if previous.issuer and current.issuer:
            details.append(f"Issuer changed from {previous.issuer} to {current.issuer}")
        elif current.issuer:
            details.append(f"Issuer set to {current.issuer}")

    if current.valid_to:
        details.append(f"Valid until {current.valid_to.isoformat()}")
    return details


def change_bucket(change: BaseModel, run_id: str, observed_on: date) -> str:
    """Idempotency bucket for one change notification: ``<date>-<hash>``.

    The hash covers previous and new values and the run, so retries inside a
    run share the key while a change that recurs later gets a fresh one.
    """
    payload = json.dumps({"change": change.model_dump(mode="json"), "run": run_id}, sort_keys=True)
    return f"{observed_on.isoformat()}-{hashlib.sha256(payload.encode()).hexdigest()[:16]}"
