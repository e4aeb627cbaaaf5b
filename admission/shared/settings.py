"""
admission/shared/settings.py
─────────────────────────────
Environment-driven defaults for the admission engine.

Every field can be overridden with an ADMISSION_-prefixed environment
variable (ADMISSION_PLATFORM_CPU_RESERVE=1, ADMISSION_GATEWAY=apis-gateway)
or a .env file. Quantities use the same notation as API configs.

get_settings() is cached: one Settings instance per process. Tests that
change the environment call get_settings.cache_clear().
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from admission.shared.models import ReservationConfig
from admission.shared.quantity import Quantity

DEFAULT_GATEWAY: str = "apis-gateway"
"""Ingress gateway that user API routes are published on."""


class AdmissionSettings(BaseSettings):
    """Admission defaults from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ADMISSION_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Instance class a batch is validated against
    instance_type: str = "default"

    # Gateway whose routes are checked for collisions
    gateway: str = DEFAULT_GATEWAY

    # Reservations
    platform_cpu_reserve: Quantity = Quantity.parse("800m")
    platform_mem_reserve: Quantity = Quantity.parse("1500Mi")
    gpu_plugin_cpu_reserve: Quantity = Quantity.parse("100m")
    gpu_plugin_mem_reserve: Quantity = Quantity.parse("100Mi")

    def reservations(self) -> ReservationConfig:
        return ReservationConfig(
            platform_cpu=self.platform_cpu_reserve,
            platform_mem=self.platform_mem_reserve,
            gpu_plugin_cpu=self.gpu_plugin_cpu_reserve,
            gpu_plugin_mem=self.gpu_plugin_mem_reserve,
        )


@lru_cache
def get_settings() -> AdmissionSettings:
    return AdmissionSettings()
