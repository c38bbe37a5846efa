"""Validated, read-only pool of named mitmproxy instances."""

from __future__ import annotations

__all__ = [
    "DEFAULT_PROXY_NAME",
    "ProxyPool",
]

from collections.abc import Iterator, Mapping
from typing import Any

from caddy_tap.exceptions import UnknownProxyError
from caddy_tap.mitm.models import MitmproxyInstance

DEFAULT_PROXY_NAME = "default"


class ProxyPool:
    """Named mitmproxy instances, fixed at construction.

    At least one instance is required. If none is named "default", the
    first one supplied is also exposed under "default" so that omitting a
    proxy name always resolves.
    """

    def __init__(self, instances: Mapping[str, MitmproxyInstance | Mapping[str, Any]]) -> None:
        """Initialize the pool.

        Args:
            instances: Proxy name to instance (or its dict form), in priority order.

        Raises:
            ValueError: If ``instances`` is empty.
        """
        if not instances:
            raise ValueError("At least one MITMproxy instance must be configured")

        self._instances: dict[str, MitmproxyInstance] = {
            name: value if isinstance(value, MitmproxyInstance) else MitmproxyInstance.model_validate(value)
            for name, value in instances.items()
        }

        if DEFAULT_PROXY_NAME not in self._instances:
            first = next(iter(self._instances.values()))
            self._instances[DEFAULT_PROXY_NAME] = first

    def get(self, name: str = DEFAULT_PROXY_NAME) -> MitmproxyInstance:
        """Resolve a proxy by name.

        Raises:
            UnknownProxyError: If no instance has that name.
        """
        try:
            return self._instances[name]
        except KeyError:
            raise UnknownProxyError(name, self._instances) from None

    def get_config(self, name: str) -> MitmproxyInstance | None:
        """Return the instance for ``name``, or None."""
        return self._instances.get(name)

    def names(self) -> list[str]:
        """Return proxy names, including the "default" alias."""
        return list(self._instances)

    def items(self) -> list[tuple[str, MitmproxyInstance]]:
        return list(self._instances.items())

    def __contains__(self, name: object) -> bool:
        return name in self._instances

    def __iter__(self) -> Iterator[str]:
        return iter(self._instances)

    def __len__(self) -> int:
        return len(self._instances)
