"""
Exception hierarchy for starbridge.

Unknown module actions and conditions are not errors (they are no-ops
and fail-closed checks). These exceptions cover the cases the engine
refuses to paper over: broken content and impossible transitions.
"""


class StarbridgeError(Exception):
    """Base exception for engine errors."""
    pass


class ContentError(StarbridgeError):
    """Episode or campaign content is malformed."""
    pass


class SceneNotFoundError(StarbridgeError):
    """A transition targets a scene the episode does not define."""

    def __init__(self, episode_id: str, scene_id: str):
        self.episode_id = episode_id
        self.scene_id = scene_id
        super().__init__(f"Scene '{scene_id}' not found in episode '{episode_id}'")


class InvalidChoiceError(StarbridgeError):
    """The selected choice is not on the current scene or is gated off."""
    pass


class EpisodeNotFoundError(StarbridgeError):
    """A campaign references an episode that is not installed."""

    MESSAGE = "episode not found, ensure all campaign content is installed"

    def __init__(self, episode_id: str):
        self.episode_id = episode_id
        super().__init__(f"{self.MESSAGE} ({episode_id})")


class CampaignNotFoundError(StarbridgeError):
    """No campaign with the requested id is available."""
    pass
