"""Resolve the effective notification policy of a resource."""

from dataclasses import dataclass

from .models import ChannelFlags, GlobalSettings, Resource


@dataclass
class EffectivePolicy:
    """Merged view of per-resource overrides and global settings."""
    enabled: bool
    channels: ChannelFlags
    threshold_days: int


def resolve_policy(resource: Resource, settings: GlobalSettings) -> EffectivePolicy:
    """
    Resolve whether, when and where a resource should be notified.

    A per-resource override (``use_global`` false) replaces the global channel
    selection entirely; unset flags in the override mean "off". With
    ``use_global`` true any override values on the resource are ignored.

    Args:
        resource: The resource being evaluated.
        settings: Global settings for this sweep or request.

    Returns:
        The effective policy.
    """
    overrides = resource.notification_settings

    if overrides is not None and not overrides.enabled:
        return EffectivePolicy(
            enabled=False,
            channels=ChannelFlags(),
            threshold_days=settings.reminder_days,
        )

    if overrides is None or overrides.use_global:
        return EffectivePolicy(
            enabled=True,
            channels=ChannelFlags(
                telegram=settings.telegram.enabled,
                email=settings.email.enabled,
                webhook=settings.webhook.enabled,
            ),
            threshold_days=settings.reminder_days,
        )

    threshold = overrides.reminder_days
    if threshold is None:
        threshold = settings.reminder_days
    channels = overrides.channels or ChannelFlags()
    return EffectivePolicy(
        enabled=True,
        channels=ChannelFlags(
            telegram=channels.telegram,
            email=channels.email,
            webhook=channels.webhook,
        ),
        threshold_days=threshold,
    )
