"""Warm container management."""

from scanweave.containers.warm import ContainerSpec, WarmContainer, WarmContainerHandle

__all__ = ["ContainerSpec", "WarmContainer", "WarmContainerHandle"]
