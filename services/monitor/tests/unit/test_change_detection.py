"""Unit tests for snapshot diffing and change messages."""

from datetime import UTC, date, datetime

from src.change_detection import messages
from src.change_detection.detection import (
    detect_certificate_change,
    detect_provider_change,
    detect_registration_change,
)
from src.change_detection.status import normalize_status, statuses_equal, transfer_lock_from_statuses
from src.change_detection.types import CertificateSnapshot, ProviderSnapshot, RegistrationSnapshot


class TestStatuses:
    def test_epp_forms_normalize_to_the_same_code(self):
        assert normalize_status("clientTransferProhibited") == normalize_status("client transfer prohibited")
        assert normalize_status(
            "clientTransferProhibited https://icann.org/epp#clientTransferProhibited"
        ) == normalize_status("CLIENT-TRANSFER-PROHIBITED")

    def test_status_sets_compare_unordered(self):
        assert statuses_equal(
            ["ok", "clientTransferProhibited"], ["client transfer prohibited", "OK"]
        )
        assert not statuses_equal(["ok"], ["ok", "serverHold"])

    def test_transfer_lock_tri_state(self):
        assert transfer_lock_from_statuses(["clientTransferProhibited"]) is True
        assert transfer_lock_from_statuses(["ok"]) is False
        assert transfer_lock_from_statuses([]) is None


class TestRegistrationDiff:
    def test_identical_is_none(self):
        snapshot = RegistrationSnapshot(
            registrar_provider_id="r1", nameservers=["ns1.a.com"], transfer_lock=True, statuses=["ok"]
        )
        assert detect_registration_change(snapshot, snapshot.model_copy()) is None

    def test_nameservers_compare_as_case_insensitive_set(self):
        previous = RegistrationSnapshot(nameservers=["NS1.A.COM.", "ns2.a.com"])
        current = RegistrationSnapshot(nameservers=["ns2.a.com", "ns1.a.com"])
        assert detect_registration_change(previous, current) is None

    def test_nameserver_change_message(self):
        previous = RegistrationSnapshot(
            nameservers=["ns1.old-dns.com", "ns2.old-dns.com"], statuses=["ok"]
        )
        current = RegistrationSnapshot(
            nameservers=["ada.ns.cloudflare.com", "bob.ns.cloudflare.com", "carl.ns.cloudflare.com"],
            statuses=["ok"],
        )

        change = detect_registration_change(previous, current)

        assert change is not None
        assert change.nameservers_changed
        assert not change.registrar_changed
        label = messages.registration_label(change)
        assert messages.compose_title(label, "example.com") == "Nameservers changed for example.com"
        details = messages.registration_details(change, {})
        assert messages.compose_message(details, "fallback") == (
            "Nameservers changed to ada.ns.cloudflare.com, bob.ns.cloudflare.com (+1 more)."
        )

    def test_registrar_takes_priority_in_title(self):
        previous = RegistrationSnapshot(registrar_provider_id="p-a", transfer_lock=True)
        current = RegistrationSnapshot(registrar_provider_id="p-b", transfer_lock=False)

        change = detect_registration_change(previous, current)

        assert messages.registration_label(change) == "Registrar"
        details = messages.registration_details(change, {"p-a": "Registrar A", "p-b": "Registrar B"})
        assert details == ["Registrar changed from Registrar A to Registrar B", "Transfer lock disabled"]

    def test_status_added_and_removed(self):
        previous = RegistrationSnapshot(statuses=["ok"])
        current = RegistrationSnapshot(statuses=["clientHold"])

        change = detect_registration_change(previous, current)

        assert messages.registration_label(change) == "Registration"
        assert messages.registration_details(change, {}) == [
            "Status added: clientHold",
            "Status removed: ok",
        ]


class TestProviderDiff:
    def test_null_to_id_counts(self):
        change = detect_provider_change(ProviderSnapshot(), ProviderSnapshot(email_provider_id="g"))

        assert change.email_changed
        assert not change.dns_changed
        assert messages.provider_label(change) == "Email provider"
        assert messages.provider_details(change, {"g": "Google Workspace"}) == [
            "Email provider set to Google Workspace"
        ]

    def test_dns_outranks_hosting(self):
        change = detect_provider_change(
            ProviderSnapshot(dns_provider_id="a", hosting_provider_id="h1"),
            ProviderSnapshot(dns_provider_id="b", hosting_provider_id=None),
        )

        assert messages.provider_label(change) == "DNS provider"
        assert messages.provider_details(change, {"a": "GoDaddy", "b": "Cloudflare", "h1": "Vercel"}) == [
            "DNS provider changed from GoDaddy to Cloudflare",
            "Hosting provider Vercel removed",
        ]


class TestCertificateDiff:
    def test_renewal_changes_valid_to_only(self):
        previous = CertificateSnapshot(
            ca_provider_id="le", issuer="R3", valid_to=datetime(2026, 1, 1, tzinfo=UTC)
        )
        current = CertificateSnapshot(
            ca_provider_id="le", issuer="R3", valid_to=datetime(2026, 4, 1, tzinfo=UTC)
        )

        change = detect_certificate_change(previous, current)

        assert change.valid_to_changed
        assert not change.ca_changed
        assert messages.certificate_label(change) == "Certificate"
        assert messages.certificate_details(change, {}) == ["Valid until 2026-04-01T00:00:00+00:00"]

    def test_ca_change(self):
        change = detect_certificate_change(
            CertificateSnapshot(ca_provider_id="le", issuer="R3"),
            CertificateSnapshot(ca_provider_id="gts", issuer="WR1"),
        )

        assert messages.certificate_label(change) == "Certificate authority"
        assert messages.certificate_details(change, {"le": "Let's Encrypt", "gts": "Google Trust Services"}) == [
            "Certificate authority changed from Let's Encrypt to Google Trust Services",
            "Issuer changed from R3 to WR1",
        ]


def test_change_bucket_covers_both_sides_and_the_run():
    to_b = detect_registration_change(
        RegistrationSnapshot(registrar_provider_id="a"), RegistrationSnapshot(registrar_provider_id="b")
    )
    to_a = detect_registration_change(
        RegistrationSnapshot(registrar_provider_id="b"), RegistrationSnapshot(registrar_provider_id="a")
    )
    day = date(2026, 10, 18)

    bucket = messages.change_bucket(to_b, "run-1", day)

    assert bucket == messages.change_bucket(to_b, "run-1", day)
    assert bucket.startswith("2026-10-18-")
    assert bucket != messages.change_bucket(to_a, "run-1", day)
    assert bucket != messages.change_bucket(to_b, "run-2", day)
