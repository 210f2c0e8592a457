"""TLS certificate chain of a domain, leaf first."""

import asyncio
import contextlib
import ssl

from cryptography import x509
from cryptography.x509.oid import NameOID
import structlog

from src.workflow.errors import TLS_ERROR, classify_fetch_error

from .types import CertificateInfo, FetchOutcome

logger = structlog.get_logger()


def _name(name: x509.Name) -> str:
    """Common name, else organization, else the RFC 4514 string."""
    for oid in (NameOID.COMMON_NAME, NameOID.ORGANIZATION_NAME):
        attributes = name.get_attributes_for_oid(oid)
        if attributes:
            return str(attributes[0].value)
    return name.rfc4514_string()


def parse_certificate(der: bytes) -> CertificateInfo:
    cert = x509.load_der_x509_certificate(der)
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        alt_names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        alt_names = []
    return CertificateInfo(
        subject=_name(cert.subject),
        issuer=_name(cert.issuer),
        alt_names=alt_names,
        valid_from=cert.not_valid_before_utc,
        valid_to=cert.not_valid_after_utc,
    )


def _peer_chain(ssl_object: ssl.SSLObject) -> list[bytes]:
    # get_unverified_chain() is available from Python 3.13; older runtimes only expose the leaf
    get_chain = getattr(ssl_object, "get_unverified_chain", None)
    if get_chain is not None:
        chain = get_chain()
        if chain:
            return list(chain)
    leaf = ssl_object.getpeercert(binary_form=True)
    return [leaf] if leaf else []


async def fetch_certificate_chain(
    domain: str, timeout: float = 6.0, port: int = 443
) -> FetchOutcome[list[CertificateInfo]]:
    """Handshake with ``domain`` and return the presented chain.

    The chain is read without validation; expired or mismatched
    certificates are returned as well.
    """
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(domain, port, ssl=context, server_hostname=domain),
            timeout=timeout,
        )
    except (OSError, asyncio.TimeoutError) as e:
        error = classify_fetch_error(e, "tls handshake")
        logger.info("certificate_fetch_failed", domain=domain, error=str(e), error_code=error.code)
        return FetchOutcome.failure(error.code)

    try:
        ders = _peer_chain(writer.get_extra_info("ssl_object"))
    finally:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    try:
        chain = [parse_certificate(der) for der in ders]
    except ValueError as e:
        logger.warning("certificate_parse_failed", domain=domain, error=str(e))
        return FetchOutcome.failure(TLS_ERROR)

    return FetchOutcome.success(chain)
