"""
Parses a dependency layer's manifest/lock pair.

Manifest (requirements.in), one declared top-level dependency per line:
    name[extras] [specifier] [; marker] [# comment]
Lock (requirements.txt, pip-compile output), one pinned package per line:
    name[extras]==version [; marker] [\\]
Indented continuation lines (hashes, "# via ...") and anything else that does not
match the grammar are skipped.
"""
from typing import Dict, List
import re

_NAME = r'[A-Za-z0-9][A-Za-z0-9._-]*'
_MANIFEST_LINE = re.compile(rf'^({_NAME})(?:\[[^\]]*\])?\s*(?:[<>=!~;@ ].*)?$')
_LOCK_LINE = re.compile(rf'^({_NAME})(?:\[[^\]]*\])?==([^\s;\\]+)')


def normalize_name(name: str) -> str:
    """Normalize a distribution name (PEP 503)"""
    return re.sub(r'[-_.]+', '-', name).lower()


def parse_manifest(text: str) -> List[str]:
    names = []
    for raw_line in text.splitlines():
        line = raw_line.split('#', 1)[0].strip()
        if not line or line.startswith('-'):
            continue
        match = _MANIFEST_LINE.match(line)
        if match:
            names.append(match.group(1))
    return names


def parse_lockfile(text: str) -> Dict[str, str]:
    versions = {}
    for line in text.splitlines():
        match = _LOCK_LINE.match(line)
        if match:
            versions[normalize_name(match.group(1))] = match.group(2)
    return versions


def get_installed_versions(manifest_text: str, lock_text: str) -> Dict[str, str]:
    """Report the locked version of every declared top-level dependency
    Args:
        manifest_text: content of the manifest
        lock_text: content of the lock
    Return:
        {declared name: locked version}; declared names missing from the lock are left out
    """
    locked = parse_lockfile(lock_text)
    versions = {}
    for name in parse_manifest(manifest_text):
        version = locked.get(normalize_name(name))
        if version is not None:
            versions[name] = version
    return versions
