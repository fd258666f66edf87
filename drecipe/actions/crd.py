"""
CustomResourceDefinition executor.

CRDs are created and applied like any other object, with two extras:
- the custom resource's plural and apiVersion are derived from the CRD
  state so that messages and discovery refer to the served type
- after a create, the custom resource type is polled until the cluster
  serves it (unless ignore_discovery is set)

apiextensions.k8s.io/v1 CRDs take the version from spec.versions[0].name.
v1beta1 CRDs use spec.version, falling back to spec.versions[0].name.
"""

import logging
from typing import Any, Optional

from drecipe import unstruct
from drecipe.actions.base import ActionResult, delete_if_exists, get_observed
from drecipe.context import RunContext
from drecipe.errors import DrecipeError, ValidationError
from drecipe.merge import merge
from drecipe.retry import Outcome
from drecipe.schemas import TaskPhase

logger = logging.getLogger(__name__)


def is_crd_version(api_version: str, version: str) -> bool:
    """True if api_version ends with /version."""
    return api_version.endswith(f"/{version}")


def _first_version(state: dict[str, Any]) -> Optional[str]:
    versions, found = unstruct.nested_field(state, "spec", "versions")
    if not found or versions is None:
        return None
    if not isinstance(versions, list):
        raise ValidationError(
            f"Invalid CRD spec: Expected spec.versions as list got {type(versions).__name__}"
        )
    for item in versions:
        if not isinstance(item, dict):
            raise ValidationError(
                f"Invalid CRD spec: Expected spec.versions item as map got {type(item).__name__}"
            )
        return item.get("name")
    return None


def custom_resource_of(state: dict[str, Any], desired_version: str = "") -> tuple[str, str]:
    """
    Derive (plural, apiVersion) of the custom resource a CRD defines.

    Raises:
        ValidationError: If plural, group or a version can't be found
    """
    plural, found = unstruct.nested_string(state, "spec", "names", "plural")
    if not found:
        raise ValidationError("Missing spec.names.plural")
    group, found = unstruct.nested_string(state, "spec", "group")
    if not found:
        raise ValidationError("Missing spec.group")

    version = desired_version
    if not version and not is_crd_version(unstruct.api_version(state), "v1"):
        version, _ = unstruct.nested_string(state, "spec", "version")
    if not version:
        version = _first_version(state) or ""
    if not version:
        raise ValidationError("Invalid CRD spec: Missing spec.versions")
    return plural, f"{group}/{version}"


class CRDExecutor:
    """
    Creates, updates or applies one CRD.

    Args:
        ctx: Run context
        state: Desired CRD object
        ignore_discovery: Skip waiting for the custom resource to be served
        desired_version: Custom resource version to discover (default: derived)
    """

    def __init__(
        self,
        ctx: RunContext,
        state: dict[str, Any],
        ignore_discovery: bool = False,
        desired_version: str = "",
    ):
        self.ctx = ctx
        self.state = state
        self.ignore_discovery = ignore_discovery
        self.cr_resource, self.cr_api_version = custom_resource_of(state, desired_version)

    def _describe(self) -> str:
        return f"Resource {self.cr_resource}: APIVersion {self.cr_api_version}"

    def post_create(self) -> None:
        """
        Wait until the custom resource type can be listed.

        Raises:
            RetryTimeout: If it is never served within the retry budget
            DiscoveryError: If the task fails fast on discovery errors
        """
        message = f"PostCreate CRD: {self._describe()}"

        def condition() -> Outcome:
            try:
                self.ctx.cluster.list_resource(self.cr_api_version, self.cr_resource)
            except DrecipeError as e:
                return self.ctx.on_error(e)
            return Outcome.succeed()

        self.ctx.retry.waitf(condition, message)

    def create(self) -> ActionResult:
        self.ctx.cluster.create(self.state)
        state = self.state
        self.ctx.add_to_teardown(
            f"Delete CRD {unstruct.name(state)}",
            lambda: delete_if_exists(self.ctx, state),
        )
        if not self.ignore_discovery:
            self.post_create()
        return ActionResult(phase=TaskPhase.PASSED, message=f"Create CRD: {self._describe()}")

    def update(self, observed: dict[str, Any]) -> ActionResult:
        """
        Three-way merge the desired CRD into observed and update it.

        Raises:
            MergeError: If observed can't be merged with the desired state
        """
        merged = merge(observed, self.state, self.state)
        self.ctx.cluster.update(merged)
        return ActionResult(phase=TaskPhase.PASSED, message=f"Update CRD: {self._describe()}")

    def apply(self) -> ActionResult:
        """Create the CRD if absent, otherwise merge it into the observed CRD."""
        observed = get_observed(self.ctx, self.state, f"Apply CRD: {self._describe()}")
        if observed is None:
            return self.create()
        return self.update(observed)
