"""
Detection of secrets in changed files.

Two gates protect against leaking credentials into a commit or to the
language model:

* the filename gate (:func:`detect_secret_files`) matches candidate
  paths against well-known secret file names before anything else
  happens;
* the content gate (:func:`detect_secrets_in_diffs`) scans added diff
  lines for token shapes right before a diff would be sent to the model,
  recording the exact line and column of each hit.

:func:`enforce_secrets_policy` turns matches into a
:class:`SecretsDetectedError` unless the caller explicitly asked to
bypass the check and the user confirmed it.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

import pathspec


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


SECRET_FILE_PATTERNS = [
    # Environment files
    ".env",
    ".env.*",
    "*.env",
    ".envrc",
    # Package manager credentials
    ".npmrc",
    ".yarnrc",
    ".yarnrc.yml",
    # Keys and certificates
    "*.key",
    "*.pem",
    "*.p12",
    "*.pfx",
    "id_rsa",
    "id_dsa",
    "id_ecdsa",
    "id_ed25519",
    "*.pub",
    # Cloud credentials
    ".aws/**",
    "credentials",
    ".docker/config.json",
    ".git-credentials",
    ".netrc",
    "*-service-account.json",
    "*-serviceaccount.json",
    "service-account*.json",
    "serviceaccount*.json",
    "kubeconfig",
    "*.kubeconfig",
    # Terraform
    "*.tfvars",
    "terraform.tfstate",
    "terraform.tfstate.backup",
    # Generic secret files
    "secrets.yml",
    "secrets.yaml",
    "secret.yml",
    "secret.yaml",
    "passwords.txt",
    "password.txt",
]

SECRET_CONTENT_PATTERNS = [
    ("API_KEY", "API Key", re.compile(r"api[_-]?key[s]?['\":\s]*[a-zA-Z0-9_-]{20,}", re.I)),
    ("AUTH_TOKEN", "Auth Token", re.compile(r"auth[_-]?token[s]?['\":\s]*[a-zA-Z0-9_-]{20,}", re.I)),
    ("ACCESS_TOKEN", "Access Token", re.compile(r"access[_-]?token[s]?['\":\s]*[a-zA-Z0-9_-]{20,}", re.I)),
    ("AWS_ACCESS_KEY_ID", "AWS Access Key ID", re.compile(r"AKIA[0-9A-Z]{16}")),
    ("AWS_SECRET_KEY", "AWS Secret Access Key", re.compile(r"aws[_-]?secret[_-]?access[_-]?key", re.I)),
    ("NPM_AUTH_TOKEN", "npm Registry Auth Token", re.compile(r"//registry\.npmjs\.org/:_authToken=")),
    ("NPM_TOKEN", "npm Token", re.compile(r"npm_[A-Za-z0-9]{30,}")),
    ("GITHUB_TOKEN", "GitHub Token", re.compile(r"gh[pousr]_[A-Za-z0-9_]{36,}")),
    ("SLACK_TOKEN", "Slack Token", re.compile(r"xox[baprs]-[0-9]{10,13}-[0-9]{10,13}-[A-Za-z0-9]{24,}")),
    ("PRIVATE_KEY", "Private Key", re.compile(r"-----BEGIN (RSA|DSA|EC|OPENSSH|PGP) PRIVATE KEY-----")),
    ("PASSWORD", "Password Literal", re.compile(r"password['\":\s]*['\"]", re.I)),
    ("SECRET", "Secret Literal", re.compile(r"secret['\":\s]*['\"]", re.I)),
]

FILE_PATTERN_ID = "SECRET_FILE_PATTERN"
FILE_PATTERN_NAME = "Secret File Pattern"

MAX_SNIPPET_LENGTH = 120

_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")
_SECRET_FILE_SPEC = pathspec.PathSpec.from_lines("gitwildmatch", SECRET_FILE_PATTERNS)


@dataclass
class SecretMatch:
    """A single location that looks like a secret."""

    file: str
    line: int
    column: int
    pattern: str
    pattern_name: str
    snippet: str
    matched_text: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class SecretsDetectedError(Exception):
    """Raised when secrets are found and the check was not bypassed.

    The error carries every match so that callers can report exact
    locations. It must never be absorbed by retry or fallback logic.
    """

    def __init__(self, matches: List[SecretMatch], message: str) -> None:
        super().__init__(message)
        self.matches = list(matches)


def is_secret_file(path: str) -> bool:
    """Return True if ``path`` matches one of the secret file patterns."""
    return _SECRET_FILE_SPEC.match_file(path.replace("\\", "/"))


def detect_secret_files(paths: Iterable[str]) -> List[str]:
    return [path for path in paths if is_secret_file(path)]


def file_matches(paths: Iterable[str]) -> List[SecretMatch]:
    """Describe filename-gate hits as :class:`SecretMatch` records without location."""
    return [
        SecretMatch(
            file=path,
            line=0,
            column=0,
            pattern=FILE_PATTERN_ID,
            pattern_name=FILE_PATTERN_NAME,
            snippet="",
            matched_text=path,
        )
        for path in paths
    ]


def _snippet(text: str) -> str:
    text = text.strip()
    if len(text) > MAX_SNIPPET_LENGTH:
        return text[: MAX_SNIPPET_LENGTH - 3] + "..."
    return text


def scan_diff(path: str, diff: str) -> List[SecretMatch]:
    """Scan the added lines of one unified diff.

    Line numbers refer to the new version of the file, derived from the
    hunk headers. Columns are 1-based.
    """
    matches: List[SecretMatch] = []
    line_no = 0
    for raw in diff.splitlines():
        header = _HUNK_HEADER.match(raw)
        if header:
            line_no = int(header.group(1))
            continue
        if raw.startswith("+++") or raw.startswith("---"):
            continue
        if raw.startswith("+"):
            content = raw[1:]
            current = line_no if line_no else 1
            for pattern_id, name, regex in SECRET_CONTENT_PATTERNS:
                for found in regex.finditer(content):
                    matches.append(
                        SecretMatch(
                            file=path,
                            line=current,
                            column=found.start() + 1,
                            pattern=pattern_id,
                            pattern_name=name,
                            snippet=_snippet(content),
                            matched_text=found.group(0),
                        )
                    )
            line_no = current + 1
        elif raw.startswith("-") or raw.startswith("\\"):
            continue
        elif line_no:
            line_no += 1
    return matches


def detect_secrets_in_diffs(diffs: Dict[str, str]) -> List[SecretMatch]:
    """Scan every diff and return all matches, ordered by file then line."""
    matches: List[SecretMatch] = []
    for path, diff in diffs.items():
        matches.extend(scan_diff(path, diff))
    return matches


def format_secrets_report(matches: List[SecretMatch]) -> str:
    """Render matches as a human-readable report grouped by file."""
    by_file: "OrderedDict[str, List[SecretMatch]]" = OrderedDict()
    for match in matches:
        by_file.setdefault(match.file, []).append(match)
    lines = [f"Detected {len(matches)} potential secret(s) in {len(by_file)} file(s):", ""]
    for path, file_hits in by_file.items():
        lines.append(f"  {path}")
        for hit in file_hits:
            if hit.line:
                lines.append(f"    line {hit.line}, column {hit.column}: {hit.pattern_name}")
                lines.append(f"      {hit.snippet}")
            else:
                lines.append("    file name matches a secret file pattern")
    lines += [
        "",
        "These changes must not be committed or sent to a language model.",
        "Add the files to .gitignore or remove the secrets, then try again.",
    ]
    return "\n".join(lines)


def enforce_secrets_policy(
    matches: List[SecretMatch],
    allow_secrets: bool,
    confirm: Optional[Callable[[str, bool], bool]],
    subject: str = "file(s)",
) -> None:
    """Block on secret matches unless a confirmed bypass was requested.

    Parameters
    ----------
    matches : List[SecretMatch]
        Hits from either gate. Nothing happens when empty.
    allow_secrets : bool
        Whether the caller asked to bypass the check.
    confirm : callable, optional
        ``confirm(question, default)`` primitive. A missing primitive
        counts as a refusal.
    subject : str
        Noun used in messages (``file(s)`` or ``location(s)``).

    Raises
    ------
    SecretsDetectedError
        When matches exist and the bypass was not requested or not
        confirmed.
    """
    if not matches:
        return
    count = len({m.file for m in matches}) if subject == "file(s)" else len(matches)
    logger.error("Secrets detected in %d %s", count, subject)
    if not allow_secrets:
        raise SecretsDetectedError(
            matches,
            f"Secrets detected in {count} {subject}. Use --allow-secrets to bypass "
            f"after review, or add files to .gitignore.",
        )
    question = f"Proceed with {count} {subject} that may contain secrets?"
    if confirm is None or not confirm(question, False):
        raise SecretsDetectedError(
            matches, "User declined to commit files with potential secrets."
        )
    logger.warning(
        "User confirmed to proceed with potential secrets in %s (confirmed_at=%s)",
        ", ".join(sorted({m.file for m in matches})),
        datetime.now(timezone.utc).isoformat(),
    )
