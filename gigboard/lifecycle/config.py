"""Tunables for the job lifecycle engine."""

from dataclasses import dataclass


@dataclass
class LifecycleConfig:
    """Configuration for :class:`~gigboard.lifecycle.service.JobService`."""

    # Completion code length (digits)
    completion_otp_digits: int = 6

    # Available-jobs listing
    default_max_distance_km: float = 25.0
    available_jobs_page_size: int = 50
    dashboard_page_size: int = 10
    max_page_size: int = 100

    # Reviews
    max_review_length: int = 500

    # Payment stub: mark new jobs paid at creation
    auto_complete_payment: bool = True

    def __post_init__(self):
        if self.completion_otp_digits < 4:
            raise ValueError("completion_otp_digits must be at least 4")
        if self.default_max_distance_km <= 0:
            raise ValueError("default_max_distance_km must be positive")
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be positive")
