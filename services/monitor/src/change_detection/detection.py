"""Pure diff functions: previous baseline vs. freshly observed values.

Each returns ``None`` when nothing changed.
"""

from .status import statuses_equal
from .types import (
    CertificateChange,
    CertificateSnapshot,
    ProviderChange,
    ProviderSnapshot,
    RegistrationChange,
    RegistrationSnapshot,
)


def _host_set(hosts: list[str]) -> set[str]:
    return {h.strip().lower().rstrip(".") for h in hosts if h.strip()}


def detect_registration_change(
    previous: RegistrationSnapshot, current: RegistrationSnapshot
) -> RegistrationChange | None:
    registrar_changed = previous.registrar_provider_id != current.registrar_provider_id
    nameservers_changed = _host_set(previous.nameservers) != _host_set(current.nameservers)
    transfer_lock_changed = previous.transfer_lock != current.transfer_lock
    statuses_changed = not statuses_equal(previous.statuses, current.statuses)

    if not (registrar_changed or nameservers_changed or transfer_lock_changed or statuses_changed):
        return None

    return RegistrationChange(
        registrar_changed=registrar_changed,
        nameservers_changed=nameservers_changed,
        transfer_lock_changed=transfer_lock_changed,
        statuses_changed=statuses_changed,
        previous=previous,
        current=current,
    )


def detect_provider_change(
    previous: ProviderSnapshot, current: ProviderSnapshot
) -> ProviderChange | None:
    dns_changed = previous.dns_provider_id != current.dns_provider_id
    hosting_changed = previous.hosting_provider_id != current.hosting_provider_id
    email_changed = previous.email_provider_id != current.email_provider_id

    if not (dns_changed or hosting_changed or email_changed):
        return None

    return ProviderChange(
        dns_changed=dns_changed,
        hosting_changed=hosting_changed,
        email_changed=email_changed,
        previous=previous,
        current=current,
    )


def detect_certificate_change(
    previous: CertificateSnapshot, current: CertificateSnapshot
) -> CertificateChange | None:
    ca_changed = previous.ca_provider_id != current.ca_provider_id
    issuer_changed = previous.issuer != current.issuer
    valid_to_changed = previous.valid_to != current.valid_to

    if not (ca_changed or issuer_changed or valid_to_changed):
        return None

    return CertificateChange(
        ca_changed=ca_changed,
        issuer_changed=issuer_changed,
        valid_to_changed=valid_to_changed,
        previous=previous,
        current=current,
    )
