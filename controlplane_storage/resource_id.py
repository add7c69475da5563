"""Azure Resource Manager resource identifiers.

Centralizes the resource ID format so callers never need to split or
join ID strings directly:

    /subscriptions/{sub}
    /subscriptions/{sub}/resourceGroups/{rg}
    /subscriptions/{sub}[/resourceGroups/{rg}]/providers/{ns}/{type}/{name}[/{childType}/{childName}]...

Resource group and resource names are matched case-insensitively, but the
casing supplied by the caller is kept so it can be echoed back.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .exceptions import ValidationError

SUBSCRIPTIONS_SEGMENT = "subscriptions"
RESOURCE_GROUPS_SEGMENT = "resourceGroups"
PROVIDERS_SEGMENT = "providers"

SUBSCRIPTION_RESOURCE_TYPE = "Microsoft.Resources/subscriptions"
RESOURCE_GROUP_RESOURCE_TYPE = "Microsoft.Resources/resourceGroups"


@dataclass(frozen=True, eq=False)
class ResourceID:
    """Parsed resource identifier.

    Attributes:
        subscription_id: Owning subscription
        resource_group_name: Resource group, if the ID is scoped to one
        provider_namespace: Resource provider namespace (e.g. Microsoft.RedHatOpenShift)
        types: Resource type segments, outermost first
        names: Resource name segments, parallel to ``types``
    """

    subscription_id: str
    resource_group_name: str | None = None
    provider_namespace: str | None = None
    types: tuple[str, ...] = ()
    names: tuple[str, ...] = ()
    # Text as parsed, so keyword segments keep the caller's casing too
    _text: str | None = field(default=None, repr=False)

    @classmethod
    def parse(cls, text: str) -> ResourceID:
        """Parse a resource ID string.

        Raises:
            ValidationError: If the string is not a well-formed resource ID
        """
        if not isinstance(text, str) or not text.startswith("/"):
            raise ValidationError("resource_id", "must start with '/'", text)

        segments = text.strip("/").split("/")
        if any(not segment for segment in segments):
            raise ValidationError("resource_id", "contains an empty segment", text)

        if len(segments) < 2 or segments[0].lower() != SUBSCRIPTIONS_SEGMENT:
            raise ValidationError("resource_id", "must begin with /subscriptions/{id}", text)

        normalized = "/" + "/".join(segments)
        subscription_id = segments[1]
        resource_group_name = None
        index = 2

        if index < len(segments) and segments[index].lower() == RESOURCE_GROUPS_SEGMENT.lower():
            if index + 1 >= len(segments):
                raise ValidationError("resource_id", "missing resource group name", text)
            resource_group_name = segments[index + 1]
            index += 2

        if index == len(segments):
            return cls(
                subscription_id=subscription_id,
                resource_group_name=resource_group_name,
                _text=normalized,
            )

        if segments[index].lower() != PROVIDERS_SEGMENT or index + 1 >= len(segments):
            raise ValidationError("resource_id", "expected /providers/{namespace}", text)

        provider_namespace = segments[index + 1]
        rest = segments[index + 2 :]
        if not rest or len(rest) % 2 != 0:
            raise ValidationError(
                "resource_id", "resource types and names must come in pairs", text
            )

        return cls(
            subscription_id=subscription_id,
            resource_group_name=resource_group_name,
            provider_namespace=provider_namespace,
            types=tuple(rest[0::2]),
            names=tuple(rest[1::2]),
            _text=normalized,
        )

    @property
    def resource_type(self) -> str:
        """Fully qualified resource type, e.g. ``Microsoft.Foo/widgets/parts``."""
        if self.provider_namespace:
            return "/".join((self.provider_namespace, *self.types))
        if self.resource_group_name is not None:
            return RESOURCE_GROUP_RESOURCE_TYPE
        return SUBSCRIPTION_RESOURCE_TYPE

    @property
    def name(self) -> str:
        """Name of the innermost resource."""
        if self.names:
            return self.names[-1]
        if self.resource_group_name is not None:
            return self.resource_group_name
        return self.subscription_id

    @property
    def parent(self) -> ResourceID | None:
        """Identifier one level up, or None for a subscription."""
        if len(self.types) > 1:
            return ResourceID(
                subscription_id=self.subscription_id,
                resource_group_name=self.resource_group_name,
                provider_namespace=self.provider_namespace,
                types=self.types[:-1],
                names=self.names[:-1],
                _text=self._trim_text(2),
            )
        if self.types:
            # Drops /providers/{namespace} along with the last type and name
            return ResourceID(
                subscription_id=self.subscription_id,
                resource_group_name=self.resource_group_name,
                _text=self._trim_text(4),
            )
        if self.resource_group_name is not None:
            return ResourceID(subscription_id=self.subscription_id, _text=self._trim_text(2))
        return None

    def _trim_text(self, count: int) -> str | None:
        if self._text is None:
            return None
        return self._text.rsplit("/", count)[0]

    def __str__(self) -> str:
        if self._text is not None:
            return self._text

        parts = [f"/{SUBSCRIPTIONS_SEGMENT}/{self.subscription_id}"]
        if self.resource_group_name is not None:
            parts.append(f"/{RESOURCE_GROUPS_SEGMENT}/{self.resource_group_name}")
        if self.provider_namespace:
            parts.append(f"/{PROVIDERS_SEGMENT}/{self.provider_namespace}")
            for resource_type, name in zip(self.types, self.names):
                parts.append(f"/{resource_type}/{name}")
        return "".join(parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceID):
            return NotImplemented
        return str(self).lower() == str(other).lower()

    def __hash__(self) -> int:
        return hash(str(self).lower())
