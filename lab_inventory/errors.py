class LabelPipelineError(Exception):
    """Base class for failures in the label / scan / notify pipeline."""


class MissingInput(LabelPipelineError):
    """A required identifier was not supplied."""


class ResolutionFailure(LabelPipelineError):
    """No external origin could be derived for this deployment."""


class EncodingFailure(LabelPipelineError):
    """The payload does not fit in a barcode at the chosen density."""


class NotConfigured(LabelPipelineError):
    """Notification transport is missing credentials or a destination."""


class TransportFailure(LabelPipelineError):
    """A send was attempted and rejected or errored."""


class LoadFailure(LabelPipelineError):
    """The item could not be found or loaded."""
