"""
HTTPS and Security Headers Engine

Checks:
- HTTPS served on the final URL, with a valid, unexpired certificate
- Mixed content (HTTPS document loading http:// subresources)
- HSTS, CSP, X-Frame-Options, X-Content-Type-Options, Referrer-Policy,
  Permissions-Policy response headers
"""

from __future__ import annotations

import asyncio
import re
import socket
import ssl
from datetime import datetime, timezone
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, ConfigDict, Field

from seoaudit.core.errors import FetchError
from seoaudit.engines.base import (
    AuditCategory,
    AuditContext,
    AuditEngine,
    CheckStatus,
    Impact,
    SEOCheck,
    check,
)
from seoaudit.engines.fetcher import DocumentSnapshot

HSTS_MAX_AGE = re.compile(r"max-age=(\d+)", re.IGNORECASE)
ONE_YEAR_SECONDS = 31_536_000


class CertificateInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    inspected: bool = False
    valid: bool = False
    issuer: str = ""
    subject: str = ""
    expires_at: str | None = None
    expiry_days: int = 0
    error: str | None = None


class HttpsAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    implemented: bool = False
    grade: str = "F"
    certificate: CertificateInfo = Field(default_factory=CertificateInfo)
    expiring_soon: bool = False
    mixed_content: bool = False
    insecure_resources: list[str] = Field(default_factory=list)


class HstsHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    max_age: int = 0
    include_subdomains: bool = False
    preload: bool = False


class CspHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    valid: bool = False
    directives: list[str] = Field(default_factory=list)


class ValueHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    value: str = ""


class PermissionsPolicyHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    directives: list[str] = Field(default_factory=list)


class SecurityHeadersAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    hsts: HstsHeader = Field(default_factory=HstsHeader)
    csp: CspHeader = Field(default_factory=CspHeader)
    x_frame_options: ValueHeader = Field(default_factory=ValueHeader)
    x_content_type_options: ValueHeader = Field(default_factory=ValueHeader)
    referrer_policy: ValueHeader = Field(default_factory=ValueHeader)
    permissions_policy: PermissionsPolicyHeader = Field(default_factory=PermissionsPolicyHeader)

    @property
    def present_count(self) -> int:
        return sum(1 for header in (
            self.hsts, self.csp, self.x_frame_options,
            self.x_content_type_options, self.referrer_policy, self.permissions_policy,
        ) if header.present)


class SecurityResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    https: HttpsAnalysis = Field(default_factory=HttpsAnalysis)
    headers: SecurityHeadersAnalysis = Field(default_factory=SecurityHeadersAnalysis)


# ─────────────────────────────────────────────
# TLS certificate
# ─────────────────────────────────────────────

class TLSCertificateInspector:
    """
    Opens a verified TLS connection and reads the peer certificate.
    The socket work is blocking, so inspect() runs it in a worker thread.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def inspect(self, host: str, port: int = 443) -> CertificateInfo:
        return await asyncio.to_thread(self._inspect_sync, host, port)

    def _inspect_sync(self, host: str, port: int) -> CertificateInfo:
        context = ssl.create_default_context()
        try:
            with socket.create_connection((host, port), timeout=self.timeout) as sock:
                with context.wrap_socket(sock, server_hostname=host) as ssock:
                    cert = ssock.getpeercert() or {}
        except ssl.SSLCertVerificationError as exc:
            return CertificateInfo(inspected=True, valid=False, error=exc.verify_message or str(exc))
        except (ssl.SSLError, OSError) as exc:
            return CertificateInfo(inspected=True, valid=False, error=str(exc) or type(exc).__name__)

        issuer = dict(x[0] for x in cert.get("issuer", ()))
        subject = dict(x[0] for x in cert.get("subject", ()))
        expires_at = None
        expiry_days = 0
        not_after = cert.get("notAfter")
        if not_after:
            expiry = datetime.fromtimestamp(ssl.cert_time_to_seconds(not_after), tz=timezone.utc)
            expires_at = expiry.isoformat()
            expiry_days = (expiry - datetime.now(timezone.utc)).days

        return CertificateInfo(
            inspected=True,
            valid=expiry_days >= 0,
            issuer=issuer.get("organizationName", issuer.get("commonName", "")),
            subject=subject.get("commonName", ""),
            expires_at=expires_at,
            expiry_days=expiry_days,
        )


# ─────────────────────────────────────────────
# Header parsing
# ─────────────────────────────────────────────

def parse_csp_directives(csp: str) -> list[str]:
    return [part.strip().split(" ")[0] for part in csp.split(";") if part.strip()]


def parse_permissions_directives(policy: str) -> list[str]:
    # Permissions-Policy is comma separated "camera=()", Feature-Policy semicolon separated "camera 'none'"
    parts = re.split(r"[,;]", policy)
    return [re.split(r"[=\s]", part.strip(), maxsplit=1)[0] for part in parts if part.strip()]


def analyze_security_headers(headers: httpx.Headers) -> SecurityHeadersAnalysis:
    hsts = headers.get("strict-transport-security", "")
    csp = headers.get("content-security-policy", "")
    xfo = headers.get("x-frame-options", "")
    xcto = headers.get("x-content-type-options", "")
    referrer = headers.get("referrer-policy", "")
    permissions = headers.get("permissions-policy") or headers.get("feature-policy") or ""

    max_age = HSTS_MAX_AGE.search(hsts)
    return SecurityHeadersAnalysis(
        hsts=HstsHeader(
            present=bool(hsts),
            max_age=int(max_age.group(1)) if max_age else 0,
            include_subdomains="includesubdomains" in hsts.lower(),
            preload="preload" in hsts.lower(),
        ),
        csp=CspHeader(
            present=bool(csp),
            valid="default-src" in csp or "script-src" in csp,
            directives=parse_csp_directives(csp) if csp else [],
        ),
        x_frame_options=ValueHeader(present=bool(xfo), value=xfo),
        x_content_type_options=ValueHeader(present=bool(xcto), value=xcto),
        referrer_policy=ValueHeader(present=bool(referrer), value=referrer),
        permissions_policy=PermissionsPolicyHeader(
            present=bool(permissions),
            directives=parse_permissions_directives(permissions) if permissions else [],
        ),
    )


def find_insecure_resources(snapshot: DocumentSnapshot) -> list[str]:
    """http:// subresources (src, form action, stylesheet href) on the document."""
    if "http://" not in snapshot.html.lower():
        return []
    found = []
    for tag in snapshot.soup.find_all(src=True):
        if tag["src"].strip().lower().startswith("http://"):
            found.append(tag["src"].strip())
    for form in snapshot.soup.find_all("form", action=True):
        if form["action"].strip().lower().startswith("http://"):
            found.append(form["action"].strip())
    for link in snapshot.link_tags("stylesheet"):
        href = link.get("href", "").strip()
        if href.lower().startswith("http://"):
            found.append(href)
    return list(dict.fromkeys(found))


def https_grade(https: bool, certificate: CertificateInfo, headers: SecurityHeadersAnalysis,
                mixed_content: bool, warning_days: int) -> str:
    if not https or (certificate.inspected and not certificate.valid):
        return "F"
    if mixed_content:
        return "C"
    if certificate.inspected and certificate.expiry_days < warning_days:
        return "C"
    if headers.hsts.present and headers.hsts.max_age >= ONE_YEAR_SECONDS:
        return "A"
    if headers.hsts.present:
        return "B"
    return "B" if headers.present_count >= 3 else "C"


class SecurityHeadersEngine(AuditEngine):

    ENGINE_NAME = "security_headers"
    CATEGORY = AuditCategory.SECURITY_HEADERS
    RESULTS_MODEL = SecurityResults

    def __init__(self, certificate_inspector: TLSCertificateInspector | None = None):
        super().__init__()
        self.certificate_inspector = certificate_inspector

    async def run(self, context: AuditContext) -> SecurityResults:
        snapshot = context.snapshot
        settings = context.settings

        headers = snapshot.headers
        final_url = snapshot.final_url
        if not snapshot.fetched:
            try:
                response = await context.fetcher.head(context.target.url)
                headers, final_url = response.headers, response.url
            except FetchError as exc:
                self.logger.info("Security header probe failed", url=context.target.url, reason=exc.reason)

        header_analysis = analyze_security_headers(headers)
        parsed = urlparse(final_url)
        is_https = parsed.scheme == "https"

        certificate = CertificateInfo()
        inspector = self.certificate_inspector
        if inspector is None and settings.INSPECT_TLS_CERTIFICATE:
            inspector = TLSCertificateInspector(timeout=settings.REQUEST_TIMEOUT_SECONDS)
        if is_https and inspector is not None and parsed.hostname:
            certificate = await inspector.inspect(parsed.hostname, parsed.port or 443)

        insecure = find_insecure_resources(snapshot) if is_https and snapshot.fetched else []
        return SecurityResults(
            https=HttpsAnalysis(
                implemented=is_https,
                grade=https_grade(is_https, certificate, header_analysis, bool(insecure),
                                  settings.TLS_EXPIRY_WARNING_DAYS),
                certificate=certificate,
                expiring_soon=certificate.valid and certificate.expiry_days < settings.TLS_EXPIRY_WARNING_DAYS,
                mixed_content=bool(insecure),
                insecure_resources=insecure[:20],
            ),
            headers=header_analysis,
        )

    def build_checks(self, results: SecurityResults) -> list[SEOCheck]:
        https = results.https
        headers = results.headers

        checks = [
            check(
                "https",
                "HTTPS Implementation",
                CheckStatus.PASS if https.implemented else CheckStatus.FAIL,
                f"HTTPS implemented (Grade: {https.grade})" if https.implemented else "HTTPS not implemented",
                Impact.CRITICAL,
                details=https.model_dump(),
            ),
            check(
                "security-headers",
                "Security Headers",
                CheckStatus.PASS if headers.hsts.present and headers.x_frame_options.present else CheckStatus.WARNING,
                f"{headers.present_count}/6 security headers present",
                Impact.MEDIUM,
                details=headers.model_dump(),
                threshold="HSTS and X-Frame-Options",
                actual_value=headers.present_count,
            ),
        ]

        certificate = https.certificate
        if https.implemented and certificate.inspected:
            if not certificate.valid:
                status, message = CheckStatus.FAIL, f"TLS certificate is invalid: {certificate.error or 'expired'}"
            elif https.expiring_soon:
                status, message = CheckStatus.WARNING, f"TLS certificate expires in {certificate.expiry_days} days"
            else:
                status, message = CheckStatus.PASS, f"TLS certificate valid for {certificate.expiry_days} days"
            checks.append(check("tls-certificate", "TLS Certificate", status, message, Impact.HIGH,
                                details=certificate.model_dump(), actual_value=certificate.expiry_days))

        if https.implemented:
            checks.append(check(
                "mixed-content",
                "Mixed Content",
                CheckStatus.FAIL if https.mixed_content else CheckStatus.PASS,
                (
                    f"{len(https.insecure_resources)} insecure HTTP resources on an HTTPS page"
                    if https.mixed_content else "No insecure subresources found"
                ),
                Impact.HIGH,
                details={"resources": https.insecure_resources},
            ))
        return checks
