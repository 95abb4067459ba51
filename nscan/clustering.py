from typing import Any, Callable, List, Protocol, Sequence, TypeVar

import numpy as np

from nscan.pixel import Pixel
from nscan.pixels import PixelBuffer

C = TypeVar("C")
V = TypeVar("V", bound="ClusterValue")

DistanceFn = Callable[[Any, C], np.ndarray]
AverageFn = Callable[[Any, np.ndarray], C]


class ClusterValue(Protocol):
    """What kmeans_values needs from a value: a distance and a group average."""

    def distance(self, other) -> float: ...

    def average(self, values) -> "ClusterValue": ...


def closest(data: Any, centers: Sequence[C], distance: DistanceFn) -> np.ndarray:
    """
    Index of the nearest center for every point.
    The first center wins when several are equally near.
    """
    table = np.stack([np.asarray(distance(data, c), dtype=np.float64) for c in centers], axis=1)
    return np.argmin(table, axis=1)


def kmeans(
    data: Any,
    centers: Sequence[C],
    iterations: int,
    distance: DistanceFn,
    average: AverageFn,
) -> List[C]:
    """
    Lloyd-style k-means over any kind of data.

    Args:
        data: The points. Only ever handed back to `distance` and `average`.
        centers (Sequence): Starting centers; their count is k and their order is kept.
        iterations (int): Maximum number of update rounds.
        distance (Callable): distance(data, center) -> 1-D array, one distance per point.
        average (Callable): average(data, member_indices) -> new center for those points.

    Returns:
        List: The k centers. A center that ends a round with no members keeps
        its previous value; it is never reseeded.
    """
    centers = list(centers)
    if not centers:
        return centers

    index = closest(data, centers, distance)
    for _ in range(iterations):
        for i in range(len(centers)):
            members = np.flatnonzero(index == i)
            if members.size:
                centers[i] = average(data, members)

        new_index = closest(data, centers, distance)
        changes = int(np.count_nonzero(new_index != index))
        index = new_index
        if changes == 0:
            break

    return centers


def kmeans_values(values: Sequence[V], centers: Sequence[V], iterations: int) -> List[V]:
    """k-means over plain objects that implement ClusterValue."""
    values = list(values)

    def distance(data, center):
        return np.array([v.distance(center) for v in data], dtype=np.float64)

    def average(data, members):
        group = [data[i] for i in members]
        return group[0].average(group)

    return kmeans(values, centers, iterations, distance, average)


def initial_centers(k: int) -> List[Pixel]:
    """
    k fully saturated, full value colors at evenly spaced hues, h = i / (k - 1).

    A single center starts at hue 0 (red).
    """
    if k == 1:
        return [Pixel.from_hsv(0.0, 1.0, 1.0)]
    return [Pixel.from_hsv(i / (k - 1), 1.0, 1.0) for i in range(k)]


def _buffer_distance(buffer: PixelBuffer, center: Pixel) -> np.ndarray:
    return buffer.distance_rgb(center)


def _buffer_average(buffer: PixelBuffer, members: np.ndarray) -> Pixel:
    return buffer.take(members).average()


def learn_palette(foreground: PixelBuffer, k: int, iterations: int) -> List[Pixel]:
    """
    Clusters foreground pixels into k representative colors.

    Points join the center with the smallest squared RGB distance even though
    the starting centers are laid out by hue. Centers are returned in label
    order, which need not match the hue they started from.
    """
    return kmeans(foreground, initial_centers(k), iterations, _buffer_distance, _buffer_average)
