# provisioning/services/connection_tester.py
"""
Connection testing for platform integrations.

Runs three steps against a platform module and a configuration value:

    1. module.validate_config(config)   fail fast on malformed config
    2. module.initialize(config)
    3. module.test_connection()

The configuration is passed in by value, so a draft that has not been saved
can be tested before it is persisted. Testing never writes to the
configuration store or to any association; callers that want to record the
outcome (PlatformConfigService.test_saved) do so themselves.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..platforms import BasePlatformModule


class ConnectionTestResult(BaseModel):
    """Result of a connection health test."""

    success: bool = Field(..., description="Whether the test succeeded")
    status: str = Field(
        ..., description="Status: healthy, unhealthy, invalid_config, not_tested"
    )
    message: str = Field(..., description="Human-readable message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional test details")
    error: Optional[str] = Field(None, description="Error message if test failed")


class ConnectionTester:
    """Validates, initializes and tests a platform module with a given config."""

    def __init__(self, timeout: Optional[float] = None):
        self._timeout = timeout
        self._logger = logging.getLogger("provisioning.connection_tester")

    @property
    def timeout(self) -> float:
        return self._timeout or settings.platform_call_timeout

    @staticmethod
    def missing_fields(module: BasePlatformModule, config: Dict[str, Any]) -> List[str]:
        return [f for f in module.required_config_fields() if not (config or {}).get(f)]

    async def test(
        self, module: BasePlatformModule, config: Dict[str, Any]
    ) -> ConnectionTestResult:
        """
        Test a module against a configuration.

        Args:
            module: Registered platform module (an isolated copy is used)
            config: Draft or saved configuration

        Returns:
            ConnectionTestResult: Test results with status and message
        """
        platform_id = module.platform_id
        self._logger.info(
            f"Testing {platform_id} with config keys {sorted((config or {}).keys())}"
        )

        if not module.validate_config(config or {}):
            missing = self.missing_fields(module, config)
            error = (
                f"Missing required fields: {', '.join(missing)}"
                if missing
                else "Configuration validation failed"
            )
            return ConnectionTestResult(
                success=False,
                status="invalid_config",
                message=f"Invalid {module.metadata.display_name} configuration",
                error=error,
                details={"missing_fields": missing},
            )

        instance = module.fresh()
        try:
            init_result = await asyncio.wait_for(instance.initialize(dict(config)), self.timeout)
            if not init_result.success:
                return ConnectionTestResult(
                    success=False,
                    status="unhealthy",
                    message=f"Failed to initialize {module.metadata.display_name}",
                    error=init_result.error,
                    details=init_result.details,
                )

            check = await asyncio.wait_for(instance.test_connection(), self.timeout)
        except asyncio.TimeoutError:
            return ConnectionTestResult(
                success=False,
                status="unhealthy",
                message="Connection timeout",
                error="timeout",
            )
        except Exception as e:
            self._logger.warning(f"Connection test for {platform_id} raised: {e}")
            return ConnectionTestResult(
                success=False,
                status="unhealthy",
                message=f"Failed to test {module.metadata.display_name} connection",
                error=str(e),
            )

        if not check.success:
            return ConnectionTestResult(
                success=False,
                status="unhealthy",
                message=f"{module.metadata.display_name} connection test failed",
                error=check.error,
                details=check.details,
            )

        details = check.data if isinstance(check.data, dict) else None
        return ConnectionTestResult(
            success=True,
            status="healthy",
            message=f"Successfully connected to {module.metadata.display_name}",
            details=details,
        )
