"""Built-in rule sets.

DEFAULT_DOCUMENT is written to disk when no permissions file exists yet.
FALLBACK_RULES is used in memory when the file exists but cannot be read or
parsed: destructive commands denied, pure reads allowed, everything else
requires confirmation.
"""

from __future__ import annotations

from typing import Any

DEFAULT_DOCUMENT: dict[str, Any] = {
    "permissions": {
        "allow": [
            "Bash(npm run lint)",
            "Bash(npm run test:*)",
            "Bash(npm run build)",
            "Bash(npm test)",
            "Bash(python -m pytest:*)",
            "Bash(git status)",
            "Bash(git diff:*)",
            "Bash(git log:*)",
            "Bash(ls:*)",
            "Bash(pwd)",
            "Bash(echo:*)",
            "Read(./package.json)",
            "Read(./pyproject.toml)",
            "Read(./README.md)",
            "Read(./src/**)",
            "Grep(*)",
            "Glob(*)",
            "LS(*)",
        ],
        "deny": [
            "Bash(rm -rf:*)",
            "Bash(sudo:*)",
            "Bash(curl:*)",
            "Bash(wget:*)",
            "Bash(shutdown:*)",
            "Bash(reboot:*)",
            "Bash(format:*)",
            "Bash(mkfs:*)",
            "Bash(kill -9:*)",
            "Bash(nc -l:*)",
            "Bash(netcat:*)",
            "Read(./.env)",
            "Read(./.env.*)",
            "Read(./secrets/**)",
            "Read(**/*password*)",
            "Read(**/*secret*)",
            "Write(./.env)",
            "Write(./secrets/**)",
            "Read(/etc/**)",
            "Write(/etc/**)",
            "Read(C:\\Windows\\**)",
            "Write(C:\\Windows\\**)",
            "DeleteDatabase",
            "FormatDisk",
            "WebFetch",
        ],
        "ask": [
            "Bash(git push:*)",
            "Bash(git merge:*)",
            "Bash(npm publish)",
            "Bash(pip install:*)",
            "Write(./dist/**)",
            "Edit(./.github/**)",
            "Delete(*)",
        ],
    },
    "profiles": {},
}

FALLBACK_RULES: dict[str, list[str]] = {
    "deny": [
        "Bash(rm -rf:*)",
        "Bash(rm -fr:*)",
        "Bash(sudo:*)",
        "Bash(shutdown:*)",
        "Bash(reboot:*)",
        "Bash(format:*)",
        "Bash(mkfs:*)",
        "Bash(dd:*)",
        "Bash(kill -9:*)",
        "Bash(killall:*)",
    ],
    "allow": [
        "Read(*)",
        "Grep(*)",
        "Glob(*)",
        "LS(*)",
    ],
    "ask": ["*"],
}

# Delete targets that no rule can ever allow
CRITICAL_DELETE_PATHS: tuple[str, ...] = (
    "/",
    "/bin",
    "/boot",
    "/etc",
    "/home",
    "/root",
    "/usr",
    "/var",
    "/System",
    "/Users",
    "C:\\",
    "C:\\Windows",
    "C:\\Users",
    "C:\\Program Files",
)
