"""Exception types raised by the engine and its collaborators."""


class PoissonarrError(Exception):
    """Base class for engine errors."""


class InvalidTargetError(PoissonarrError):
    """Target URI scheme is not http or https."""


class ResourceOpenError(PoissonarrError):
    """The host could not open the destination resource."""


class CollaboratorAttachError(PoissonarrError):
    """The interaction collaborator could not attach to an opened resource."""


class HandoffError(PoissonarrError):
    """The collaborator was not ready to receive the interact command."""


class UnknownActionError(PoissonarrError):
    """Command message named an action the engine does not handle."""
