"""
Feature Flags System for Backend
Environment-based feature control for the SCORM merge service
"""

import os
from typing import Dict, List
from dataclasses import dataclass
from enum import Enum


class Environment(Enum):
    DEVELOPMENT = "development"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


ALL_ENVIRONMENTS = [
    Environment.DEVELOPMENT,
    Environment.TEST,
    Environment.STAGING,
    Environment.PRODUCTION,
]


@dataclass
class FeatureFlag:
    name: str
    enabled: bool
    description: str
    environments: List[Environment]


class FeatureFlagService:
    """Service for managing feature flags in the backend"""

    def __init__(self):
        self.current_environment = self._get_current_environment()
        self.flags = self._initialize_flags()

    def _get_current_environment(self) -> Environment:
        """Get current environment from environment variable"""
        env_name = os.getenv('ENVIRONMENT', 'development').lower()
        try:
            return Environment(env_name)
        except ValueError:
            return Environment.DEVELOPMENT

    def _initialize_flags(self) -> Dict[str, FeatureFlag]:
        """Initialize feature flags with their configurations"""
        flags = {
            'ai_descriptions': FeatureFlag(
                name='ai_descriptions',
                enabled=True,
                description='Generate package descriptions with the OpenAI backend',
                environments=[
                    Environment.DEVELOPMENT,
                    Environment.STAGING,
                    Environment.PRODUCTION,
                ]
            ),
            'description_fallback': FeatureFlag(
                name='description_fallback',
                enabled=True,
                description='Use rule-based descriptions when generation fails',
                environments=ALL_ENVIRONMENTS
            ),
            'content_sampling': FeatureFlag(
                name='content_sampling',
                enabled=True,
                description='Extract a text sample from package markup on upload',
                environments=ALL_ENVIRONMENTS
            ),
            'finish_handler': FeatureFlag(
                name='finish_handler',
                enabled=True,
                description='Inject the return-to-menu script into package pages',
                environments=ALL_ENVIRONMENTS
            ),
            'upload_cleanup': FeatureFlag(
                name='upload_cleanup',
                enabled=True,
                description='Periodically delete stale uploaded archives',
                environments=[
                    Environment.DEVELOPMENT,
                    Environment.STAGING,
                    Environment.PRODUCTION,
                ]
            ),
        }

        # Apply environment-specific overrides
        self._apply_environment_overrides(flags)

        return flags

    def _apply_environment_overrides(self, flags: Dict[str, FeatureFlag]) -> None:
        """Apply environment-specific feature flag overrides"""
        for flag in flags.values():
            flag.enabled = self.current_environment in flag.environments

            env_var_name = f"FEATURE_{flag.name.upper()}"
            env_override = os.getenv(env_var_name)
            if env_override is not None:
                flag.enabled = env_override.lower() in ('true', '1', 'yes', 'on')

    def is_enabled(self, flag_name: str) -> bool:
        """Check if a feature flag is enabled"""
        flag = self.flags.get(flag_name)
        if flag is None:
            return False
        return flag.enabled

    def get_enabled_flags(self) -> List[str]:
        """Get list of all enabled flag names"""
        return [name for name, flag in self.flags.items() if flag.enabled]

    def set_flag(self, flag_name: str, enabled: bool) -> bool:
        """Toggle a flag at runtime (development and test only)"""
        if self.current_environment not in (
            Environment.DEVELOPMENT, Environment.TEST
        ):
            return False

        flag = self.flags.get(flag_name)
        if flag:
            flag.enabled = enabled
            return True
        return False

    def reload(self) -> None:
        """Re-read environment and flag overrides"""
        self.current_environment = self._get_current_environment()
        self.flags = self._initialize_flags()

    def get_environment_info(self) -> Dict:
        """Get current environment information"""
        return {
            'current_environment': self.current_environment.value,
            'total_flags': len(self.flags),
            'enabled_flags': len(self.get_enabled_flags()),
            'flag_summary': {name: flag.enabled for name, flag in self.flags.items()}
        }


# Global feature flag service instance
feature_flags = FeatureFlagService()


def is_feature_enabled(flag_name: str) -> bool:
    """Check if a feature is enabled"""
    return feature_flags.is_enabled(flag_name)
