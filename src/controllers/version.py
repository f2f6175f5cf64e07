"""Version parsing for SearchCluster versions."""

import easysemver


def parse_version(value: str) -> easysemver.Version:
    """Parse a version string, raising ValueError when it is not valid SemVer."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid version: {value!r}")
    try:
        return easysemver.Version(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid version: {value!r}") from e
