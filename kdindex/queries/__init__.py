from .knn import nearest_neighbor, nearest_neighbors
from .radius import points_within_radius

__all__ = ["nearest_neighbor", "nearest_neighbors", "points_within_radius"]
