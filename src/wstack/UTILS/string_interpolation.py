"""
Utilities for string interpolation using environment variables.
"""
import re
from typing import Dict

class EnvironmentInterpolator:
    """
    Utility for interpolating environment variables in strings.
    Supports ${VAR}, ${VAR:-default}, and ${VAR:+value}.
    """
    pattern = re.compile(r'\$\{([^}:]+)(?::(-|\+)([^}]*))?\}')

    @classmethod
    def interpolate(cls, template: str, context: Dict[str, str], strict: bool = False) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :param strict: Raise instead of substituting an empty string for unset variables.
        :return: The interpolated string.
        :raises KeyError: If strict and a variable is unset with no default.
        """
        def replace(match):
            var_name = match.group(1)
            modifier = match.group(2)
            alt_value = match.group(3)

            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            elif modifier == '+':
                return alt_value if value else ''
            if value is not None:
                return value
            if strict:
                raise KeyError(f"Variable {var_name} not found in context")
            return ''

        return cls.pattern.sub(replace, template)
