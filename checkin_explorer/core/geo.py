from geopy.distance import great_circle

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km on a sphere of radius EARTH_RADIUS_KM.

    Coordinates are not range-checked here; callers validate their inputs.
    """
    return great_circle((lat1, lng1), (lat2, lng2), radius=EARTH_RADIUS_KM).km
