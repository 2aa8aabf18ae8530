"""Errors reported by the triangulation.

Only the subclasses of :class:`TriangulationError` ever leave
:func:`polycdt.mesh.triangulate`. :class:`TopologyError` is raised by the mesh
primitives when the adjacency structure is inconsistent and is translated by
the orchestrator into the error of the stage that was running.
"""

from polycdt.utils import Edge


class TriangulationError(Exception):
    """Base class of every failure reported to the caller."""


class InputValidationError(TriangulationError, ValueError):
    """The polygon, its holes or the interior points are not a valid input."""


class UnrecoverableConstraintError(TriangulationError):
    """A ring edge could not be recovered in the mesh by edge flips."""

    def __init__(self, message: str, edge: Edge | None = None) -> None:
        super().__init__(message)
        self.edge = edge


class OutOfBoundsHoleError(TriangulationError):
    """A hole extends beyond the convex extent of the input point cloud."""

    def __init__(self, message: str, hole_index: int | None = None) -> None:
        super().__init__(message)
        self.hole_index = hole_index


class NonTerminationGuard(TriangulationError):
    """
    A flip loop exceeded its iteration bound, or vertex insertion could not go on.

    :func:`polycdt.mesh.triangulate` also reports a failed point location or
    triangle split during vertex insertion with this error; ``limit`` is then None.
    """

    def __init__(self, message: str, limit: int | None = None) -> None:
        super().__init__(message)
        self.limit = limit


class TopologyError(RuntimeError):
    """Inconsistent triangle adjacency (internal)."""
