"""
Configuration management for the GCE node orchestrator.
"""

from dataclasses import dataclass

from models import DEFAULT_RESOURCE_PREFIX


@dataclass
class OrchestratorConfig:
    """Configuration for node orchestration."""

    project_id: str
    zone: str = "us-central1-a"
    max_parallel: int = 5
    timeout: int = 600
    poll_interval: float = 2.0
    max_poll_interval: float = 10.0
    backoff_factor: float = 1.5
    max_fetch_failures: int = 3
    stagger_delay: float = 0.0
    boot_disk_suffix: str = "boot"
    resource_prefix: str = DEFAULT_RESOURCE_PREFIX
    verbose: bool = False

    def __post_init__(self):
        if self.max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        if self.poll_interval <= 0 or self.max_poll_interval < self.poll_interval:
            raise ValueError(
                "poll_interval must be positive and not exceed max_poll_interval"
            )

    @classmethod
    def from_args(cls, args) -> "OrchestratorConfig":
        """
        Create configuration from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            OrchestratorConfig instance
        """
        return cls(
            project_id=args.project,
            zone=args.zone,
            max_parallel=args.max_parallel,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            max_poll_interval=max(args.max_poll_interval, args.poll_interval),
            stagger_delay=args.stagger_delay,
            verbose=args.verbose,
        )
