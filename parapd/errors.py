"""parapd specific error classes.

Configuration problems are detected while a job is assembled and surface
before any time step is taken. Everything raised while stepping is fatal to
the whole run.
"""


class ParapdError(Exception):
    """Base class of all errors raised by parapd."""


class ConfigurationError(ParapdError, ValueError):
    """Invalid user input: solver parameters, bodies, materials, conditions."""


class DecompositionError(ConfigurationError):
    """The point set cannot be split into the requested number of chunks."""


class ConsistencyError(ParapdError, RuntimeError):
    """Solver state was changed into an invalid one after construction."""


class WorkerError(ParapdError, RuntimeError):
    """A worker failed while processing a chunk; the run is aborted."""

    def __init__(self, chunk_id, cause):
        self.chunk_id = chunk_id
        self.cause = cause
        super().__init__(chunk_id, cause)

    def __str__(self):
        """Returns the error message."""
        return (f'worker processing chunk {self.chunk_id} failed: '
                f'{type(self.cause).__name__}: {self.cause}')
