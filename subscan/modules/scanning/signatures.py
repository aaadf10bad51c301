"""Static signature tables consumed by the finding pipeline and the scorer."""

from __future__ import annotations

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TakeoverSignature:
    """Hosting provider whose dangling aliases can be claimed by anyone."""
    provider: str
    cname_patterns: tuple[str, ...]
    fingerprints: tuple[str, ...]

    def matches_alias(self, hop: str) -> bool:
        """Substring match of an alias hop against the provider patterns."""
        return any(pattern in hop for pattern in self.cname_patterns)

    def matches_body(self, body: str) -> bool:
        """Check the page for an absent-service fingerprint."""
        return any(fp in body for fp in self.fingerprints)


@dataclass(frozen=True)
class CloudProviderPattern:
    """Alias pattern identifying a cloud or hosting provider."""
    provider: str
    pattern: str

    @property
    def regex(self) -> re.Pattern:
        return re.compile(self.pattern, re.IGNORECASE)


@dataclass(frozen=True)
class SensitiveFile:
    """Path whose content should never be public."""
    path: str
    description: str
    content_signatures: tuple[str, ...]

    @property
    def tag(self) -> str:
        """Tag derived from the final path segment, e.g. ``EXPOSED-CONFIG``."""
        return "EXPOSED-" + self.path.rstrip("/").split("/")[-1].upper()


@dataclass(frozen=True)
class RedirectProbe:
    """Path and query parameter commonly used for post-login redirects."""
    path: str
    param: str


@dataclass(frozen=True)
class StorageMarkers:
    """Body markers and alias domains of the object-storage service."""
    domains: tuple[str, ...] = ("s3.amazonaws.com", "amazonaws.com")
    listing: str = "<ListBucketResult"
    access_denied: str = "AccessDenied"
    no_such_bucket: str = "NoSuchBucket"
    max_listed_objects: int = 5


@dataclass(frozen=True)
class SignatureTables:
    """
    Immutable signature configuration injected into the pipeline.

    Providers are always evaluated in lexicographic order of their name
    so that results do not depend on table declaration order.
    """
    takeovers: tuple[TakeoverSignature, ...] = ()
    cloud_providers: tuple[CloudProviderPattern, ...] = ()
    storage: StorageMarkers = field(default_factory=StorageMarkers)
    sensitive_files: tuple[SensitiveFile, ...] = ()
    redirect_probes: tuple[RedirectProbe, ...] = ()

    def ordered_takeovers(self) -> list[TakeoverSignature]:
        return sorted(self.takeovers, key=lambda s: s.provider)

    def ordered_cloud_providers(self) -> list[CloudProviderPattern]:
        return sorted(self.cloud_providers, key=lambda p: p.provider)


# Reference: https://github.com/EdOverflow/can-i-take-over-xyz
TAKEOVER_SIGNATURES = (
    TakeoverSignature(
        "AWS/S3",
        ("s3.amazonaws.com", "amazonaws.com.s3", ".s3.amazonaws.com"),
        ("NoSuchBucket", "The specified bucket does not exist"),
    ),
    TakeoverSignature(
        "Heroku",
        ("herokuapp.com", "herokuapp"),
        ("No such app", "Heroku | No such app", "herokucdn.com/error-pages/no-such-app.html"),
    ),
    TakeoverSignature(
        "GitHub",
        ("github.io",),
        (
            "There isn't a GitHub Pages site here",
            "For root URLs (like http://example.com/) you must provide an index.html file",
        ),
    ),
    TakeoverSignature(
        "Azure",
        ("azurewebsites.net", "cloudapp.net", "azure-api.net"),
        ("404 Web Site not found",),
    ),
    TakeoverSignature("Fastly", ("fastly.net",), ("Fastly error: unknown domain", "fastly error")),
    TakeoverSignature("Pantheon", ("pantheonsite.io",), ("The gods are wise", "404 error unknown site!")),
    TakeoverSignature("Shopify", ("myshopify.com",), ("Sorry, this shop is currently unavailable",)),
    TakeoverSignature("Zendesk", ("zendesk.com",), ("Help Center Closed",)),
    TakeoverSignature("Wordpress", ("wordpress.com",), ("Do you want to register",)),
    TakeoverSignature(
        "Acquia",
        ("acquia-sites.com",),
        ("The site you are looking for could not be found.",),
    ),
    TakeoverSignature(
        "Agile CRM",
        ("cname.agilecrm.com",),
        ("Sorry, this page is no longer available.",),
    ),
    TakeoverSignature("Bitbucket", ("bitbucket.io",), ("Repository not found",)),
    TakeoverSignature("Campaign Monitor", ("createsend.com",), ("Double check the URL",)),
    TakeoverSignature(
        "DigitalOcean",
        ("digitalocean.com",),
        ("404 Not Found", "Domain uses DO name servers with no records in DO."),
    ),
    TakeoverSignature("Ghost", ("ghost.io",), ("Domain is not configured", "404 Not Found")),
    TakeoverSignature(
        "Strikingly",
        ("s.strikinglydns.com",),
        ("But if you're looking to build your own website", "406 not acceptable"),
    ),
    TakeoverSignature("Surge.sh", ("surge.sh",), ("project not found",)),
    TakeoverSignature(
        "Tumblr",
        ("domains.tumblr.com",),
        ("Whatever you were looking for doesn't currently exist at this address.",),
    ),
    TakeoverSignature(
        "Webflow",
        ("proxy.webflow.com", "proxy-ssl.webflow.com"),
        ("The page you are looking for doesn't exist or has been moved.",),
    ),
    TakeoverSignature(
        "Vercel",
        ("vercel-dns.com", "vercel.app"),
        ("The deployment could not be found on Vercel.",),
    ),
    TakeoverSignature("Netlify", ("netlify.app", "netlify.com"), ("Not found", "404")),
)

CLOUD_PROVIDER_PATTERNS = (
    CloudProviderPattern("AWS-S3", r"s3[\.-]([a-z0-9-]+\.)?amazonaws\.com"),
    CloudProviderPattern("AWS-CloudFront", r"\.cloudfront\.net"),
    CloudProviderPattern("Azure-API", r"\.azure-api\.net"),
    CloudProviderPattern("Azure-Web", r"\.azurewebsites\.net"),
    CloudProviderPattern("Azure-Blob", r"\.blob\.core\.windows\.net"),
    CloudProviderPattern("Azure-CDN", r"\.azureedge\.net"),
    CloudProviderPattern("Google-API", r"\.googleapis\.com"),
    CloudProviderPattern("Google-User", r"\.ghs\.googlehosted\.com"),
    CloudProviderPattern("Firebase", r"\.firebaseapp\.com"),
    CloudProviderPattern("GitHub-Pages", r"\.github\.io"),
    CloudProviderPattern("Azure-VM", r"\.cloudapp\.net"),
    CloudProviderPattern("Azure-Traffic", r"\.trafficmanager\.net"),
    CloudProviderPattern("Heroku", r"\.herokuapp\.com"),
    CloudProviderPattern("Netlify", r"\.netlify\.app"),
    CloudProviderPattern("Pantheon", r"\.pantheonsite\.io"),
    CloudProviderPattern("Fastly", r"\.fastly\.net"),
    CloudProviderPattern("Vercel", r"\.vercel\.app"),
    CloudProviderPattern("Shopify", r"\.shopifyhostedapps\.com"),
    CloudProviderPattern("PageCDN", r"pagecdn\.io"),
    CloudProviderPattern("Cloudflare-Workers", r"\.workers\.dev"),
    CloudProviderPattern("Google-AppEngine", r"\.appspot\.com"),
)

SENSITIVE_FILES = (
    SensitiveFile("/.env", "Environment Variables File", ("DB_PASSWORD", "API_KEY", "SECRET")),
    SensitiveFile("/.git/config", "Git Config File", ("[core]", "repositoryformatversion", "filemode")),
    SensitiveFile("/config.json", "Configuration File", ("password", "secret", "key", "token")),
    SensitiveFile("/wp-config.php", "WordPress Config", ("DB_PASSWORD", "AUTH_KEY")),
    SensitiveFile("/robots.txt", "Robots.txt File", ("Disallow:", "Allow:")),
    SensitiveFile("/sitemap.xml", "Sitemap", ("<urlset", "<url>", "<loc>")),
    SensitiveFile("/.well-known/security.txt", "Security Policy", ("Contact:", "Expires:")),
    SensitiveFile("/server-status", "Apache Status Page", ("Apache Server Status", "Server Version:")),
    SensitiveFile("/phpinfo.php", "PHP Info", ("PHP Version", "PHP Credits")),
)

REDIRECT_PROBES = (
    RedirectProbe("/redirect", "url"),
    RedirectProbe("/login", "next"),
    RedirectProbe("/logout", "next"),
    RedirectProbe("/signin", "redirect"),
    RedirectProbe("/auth/callback", "url"),
    RedirectProbe("/go", "url"),
    RedirectProbe("/redirect", "to"),
    RedirectProbe("/", "url"),
    RedirectProbe("/", "redirect_to"),
    RedirectProbe("/", "redirect_uri"),
    RedirectProbe("/", "return_to"),
    RedirectProbe("/", "next"),
    RedirectProbe("/", "redir"),
    RedirectProbe("/", "r"),
)

DEFAULT_SIGNATURES = SignatureTables(
    takeovers=TAKEOVER_SIGNATURES,
    cloud_providers=CLOUD_PROVIDER_PATTERNS,
    storage=StorageMarkers(),
    sensitive_files=SENSITIVE_FILES,
    redirect_probes=REDIRECT_PROBES,
)
