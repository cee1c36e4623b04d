"""Template rendering and condition evaluation.

Properties such as the project name, the Docker host and trigger conditions
are Jinja2 templates rendered in a sandbox. Undefined variables are errors,
never silently empty strings.

A condition is truthy unless its rendered text is one of the false values
("", "0", "-0", "false", "none", "null"; case and surrounding whitespace are
ignored).

Example usage:
    >>> renderer = TemplateRenderer()
    >>> renderer.render("sf-{{ name }}", {"name": "web"})
    'sf-web'
    >>> renderer.evaluate_condition("{{ containers | length > 0 }}", {"containers": []})
    False
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from composekit.exceptions import ConditionEvaluationError
from composekit.logging import get_logger

logger = get_logger(__name__)

FALSE_VALUES = frozenset({"", "0", "-0", "false", "none", "null"})


def is_truthy(value: str | None) -> bool:
    """Coerce a rendered template to a boolean."""
    if value is None:
        return False
    return value.strip().lower() not in FALSE_VALUES


class TemplateRenderer:
    """Renders Jinja2 templates against a variable binding.

    Attributes:
        env: Sandboxed Jinja2 environment with strict undefined handling
    """

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)

    def render(self, template: str | None, variables: Mapping[str, Any] | None = None) -> str | None:
        """Render a template string.

        Args:
            template: Template source; None renders to None
            variables: Variables available to the template

        Returns:
            Rendered text, or None when template is None

        Raises:
            ConditionEvaluationError: If the template fails to parse or render.
        """
        if template is None:
            return None
        try:
            return self.env.from_string(template).render(dict(variables or {}))
        except TemplateError as e:
            raise ConditionEvaluationError(template, f"{type(e).__name__}: {e}") from e
        except (TypeError, ValueError, ArithmeticError, LookupError, AttributeError) as e:
            raise ConditionEvaluationError(template, f"{type(e).__name__}: {e}") from e

    def evaluate_condition(
        self,
        expression: str | None,
        variables: Mapping[str, Any] | None = None,
        *,
        default: bool = True,
    ) -> bool:
        """Evaluate a condition template to a boolean.

        Args:
            expression: Condition template; None or blank uses ``default``
            variables: Variables available to the condition
            default: Result when no condition is configured

        Returns:
            Truthiness of the rendered condition

        Raises:
            ConditionEvaluationError: If the condition fails to render.
        """
        if expression is None or not expression.strip():
            logger.debug("condition_not_configured", default=default)
            return default
        rendered = self.render(expression, variables)
        logger.debug("condition_rendered", rendered=rendered)
        return is_truthy(rendered)
