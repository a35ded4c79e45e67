"""
Exception types.

Contract violations mean this code and the model artifact disagree about
the interface; they abort the current run. Resource errors (audio device,
download) are reported so the caller can decide whether to retry.
"""


class ContractViolation(RuntimeError):
    """Model/interface mismatch: wrong arity, missing or re-taken tensor, bad dtype."""


class ShapeMismatchError(ContractViolation, ValueError):
    """Tensor or token sequence has a shape the contract does not allow."""


class AudioDeviceError(RuntimeError):
    """No usable output device, or the output stream could not be built."""


class FetchError(OSError):
    """Remote file could not be downloaded."""
