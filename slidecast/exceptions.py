class SlidecastError(Exception):
    """Base class for errors raised by the slidecast pipeline"""


class SynthesisError(SlidecastError):
    """Voice service returned no audio payload or rejected the text"""


class EncoderUnsupportedError(SlidecastError):
    """No codec profile could be negotiated with the encoder runtime"""


# Alias
UnsupportedEncoderError = EncoderUnsupportedError


class EncoderRuntimeError(SlidecastError):
    """The encoder failed while a recording was open"""


class ValidationError(SlidecastError):
    """Analysis payload is malformed or unusable"""


class InvalidTransitionError(SlidecastError):
    """A pipeline phase change that the phase machine does not allow"""
