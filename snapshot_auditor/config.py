"""Runtime configuration for the snapshot auditor, read once from the environment."""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

from .models import Location

SCHEME_RESOURCE_POLICY = "resource-policy"
SCHEME_ANNOTATION = "annotation"
POLICY_SCHEMES = (SCHEME_RESOURCE_POLICY, SCHEME_ANNOTATION)

DEFAULT_REGION = "us-central1"
DEFAULT_ZONE_SUFFIXES = ("a", "b", "c", "d", "e", "f")


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable configuration."""
    pass


def default_locations(region: str) -> tuple[Location, ...]:
    """Multi-zone (regional) scope first, then every zone of the region."""
    return (Location("region", region),) + tuple(
        Location("zone", f"{region}-{suffix}") for suffix in DEFAULT_ZONE_SUFFIXES
    )


@dataclass(frozen=True)
class AuditConfig:
    """Immutable settings passed to every component of a run."""
    cluster_name: str
    project: str
    kube_context: str | None = None
    locations: tuple[Location, ...] = default_locations(DEFAULT_REGION)
    default_policy: str = "dailykeep14"
    policy_scheme: str = SCHEME_RESOURCE_POLICY
    annotation_key: str = "backup.kubernetes.io/deltas"
    annotation_value: str = "P1D P14D"
    stale_after: timedelta = timedelta(hours=48)
    max_workers: int = 8
    slack_webhook: str | None = None
    slack_token: str | None = None
    slack_channel: str | None = None
    report_dir: str = "/tmp"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AuditConfig":
        env = os.environ if environ is None else environ

        cluster_name = env.get("CLUSTER_NAME", "").strip()
        project = env.get("GCLOUD_PROJECT", "").strip()
        if not cluster_name:
            raise ConfigError("CLUSTER_NAME environment variable must be set")
        if not project:
            raise ConfigError("GCLOUD_PROJECT environment variable must be set")

        region = env.get("GCP_REGION", DEFAULT_REGION).strip() or DEFAULT_REGION
        raw_locations = env.get("SNAPSHOT_LOCATIONS", "").strip()
        if raw_locations:
            try:
                locations = tuple(
                    Location.parse(item) for item in raw_locations.split(",") if item.strip()
                )
            except ValueError as e:
                raise ConfigError(str(e)) from e
            if not locations:
                raise ConfigError("SNAPSHOT_LOCATIONS must name at least one location")
        else:
            locations = default_locations(region)

        scheme = env.get("POLICY_SCHEME", SCHEME_RESOURCE_POLICY).strip().lower()
        if scheme not in POLICY_SCHEMES:
            raise ConfigError(
                f"Unknown POLICY_SCHEME: {scheme}. Valid options: {', '.join(POLICY_SCHEMES)}"
            )

        stale_hours = _positive_int(env, "SNAPSHOT_STALE_AFTER_HOURS", 48)
        max_workers = _positive_int(env, "MAX_WORKERS", 8)

        return cls(
            cluster_name=cluster_name,
            project=project,
            kube_context=env.get("KUBE_CONTEXT") or None,
            locations=locations,
            default_policy=env.get("DEFAULT_SNAPSHOT_POLICY", "dailykeep14"),
            policy_scheme=scheme,
            annotation_key=env.get("SNAPSHOT_ANNOTATION_KEY", "backup.kubernetes.io/deltas"),
            annotation_value=env.get("SNAPSHOT_ANNOTATION_VALUE", "P1D P14D"),
            stale_after=timedelta(hours=stale_hours),
            max_workers=max_workers,
            slack_webhook=env.get("SLACK_K8S_SNAPSHOTTER_APP_WEBHOOK") or None,
            slack_token=env.get("SLACK_K8S_SNAPSHOTTER_APP_TOKEN") or None,
            slack_channel=env.get("SLACK_CHANNEL_K8S_SNAPSHOTTER_ID") or None,
            report_dir=env.get("REPORT_DIR", "/tmp"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value
