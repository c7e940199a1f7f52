"""
Coverage resolution: which worker, if any, serves a ZIP code.

A worker covers a ZIP when the distance from one of their active coverage
areas' base ZIP to that ZIP is within the area's travel radius. Distances
come from ``haversine_miles`` over ZIP centroid coordinates; coordinates are
read from the ``zip_locations`` table and, when missing, fetched from the
configured geocoder and cached there.
"""
import logging
from dataclasses import asdict, dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from scoopify import db
from scoopify.models import CoverageArea, Employee, ZipLocation
from scoopify.utils.validators import is_valid_zip

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(lat1, lng1, lat2, lng2):
    """Return the great-circle distance in miles between two points."""
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * asin(sqrt(a))


class DistanceLookupError(Exception):
    """Coordinates for a ZIP could not be determined."""


class ZipLocator:
    """Resolve ZIP codes to (latitude, longitude)."""

    def __init__(self, geocoder_url=None, timeout=5.0):
        self.geocoder_url = geocoder_url
        self.timeout = timeout

    def locate(self, zip_code):
        row = db.session.get(ZipLocation, zip_code)
        if row is not None:
            return row.latitude, row.longitude
        if not self.geocoder_url:
            raise DistanceLookupError(f'No coordinates for ZIP {zip_code}')
        return self._geocode(zip_code)

    def _geocode(self, zip_code):
        try:
            response = requests.get(self.geocoder_url, params={'zip': zip_code}, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
            lat = float(payload['latitude'])
            lng = float(payload['longitude'])
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning('Geocoder lookup failed for ZIP %s: %s', zip_code, exc)
            raise DistanceLookupError(f'Geocoder lookup failed for ZIP {zip_code}') from exc

        self._cache(zip_code, lat, lng, payload.get('city'), payload.get('state'))
        return lat, lng

    def _cache(self, zip_code, lat, lng, city, state):
        try:
            db.session.add(ZipLocation(zip_code=zip_code, latitude=lat, longitude=lng, city=city, state=state))
            db.session.commit()
        except SQLAlchemyError:
            # Another request cached it first, or the write failed; the lookup itself succeeded
            db.session.rollback()
            logger.warning('Could not cache coordinates for ZIP %s', zip_code)


class HaversineDistance:
    """Distance strategy: great-circle miles between ZIP centroids."""

    def __init__(self, locator):
        self.locator = locator

    def miles(self, origin_zip, target_zip):
        if origin_zip == target_zip:
            return 0.0
        lat1, lng1 = self.locator.locate(origin_zip)
        lat2, lng2 = self.locator.locate(target_zip)
        return haversine_miles(lat1, lng1, lat2, lng2)


@dataclass
class CoverageResult:
    is_covered: bool
    matched_employee_id: Optional[str] = None
    distance_miles: Optional[float] = None
    reason: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        if self.distance_miles is not None:
            data['distance_miles'] = round(self.distance_miles, 2)
        return data


class CoverageResolver:
    """Answers coverage questions; never raises for lookup problems."""

    def __init__(self, distance):
        self.distance = distance

    @classmethod
    def from_config(cls, config):
        locator = ZipLocator(config.get('ZIP_GEOCODER_URL'), config.get('EXTERNAL_TIMEOUT_SECONDS', 5.0))
        return cls(HaversineDistance(locator))

    def _active_areas(self, employee_id=None):
        query = (
            CoverageArea.query
            .join(Employee, CoverageArea.employee_id == Employee.id)
            .filter(CoverageArea.is_active == True, Employee.is_active == True)  # noqa: E712
        )
        if employee_id:
            query = query.filter(CoverageArea.employee_id == employee_id)
        return query.all()

    def _nearest(self, areas, zip_code):
        best = None
        lookup_failed = False
        for area in areas:
            try:
                miles = self.distance.miles(area.zip_code, zip_code)
            except DistanceLookupError:
                lookup_failed = True
                continue
            if miles <= area.travel_radius_miles and (best is None or miles < best[0]):
                best = (miles, area)
        return best, lookup_failed

    def check_coverage(self, zip_code):
        if not is_valid_zip(zip_code):
            return CoverageResult(is_covered=False, reason='invalid_zip')

        try:
            areas = self._active_areas()
            if not areas:
                return CoverageResult(is_covered=False, reason='no_active_coverage')
            best, lookup_failed = self._nearest(areas, zip_code)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Coverage lookup failed for ZIP %s', zip_code)
            return CoverageResult(is_covered=False, reason='distance_lookup_failed')

        if best is None:
            reason = 'distance_lookup_failed' if lookup_failed else 'out_of_range'
            return CoverageResult(is_covered=False, reason=reason)

        miles, area = best
        return CoverageResult(is_covered=True, matched_employee_id=area.employee_id, distance_miles=miles)

    def employee_covers(self, employee_id, zip_code):
        """Whether this worker's active coverage reaches zip_code."""
        if not is_valid_zip(zip_code):
            return False
        try:
            best, _ = self._nearest(self._active_areas(employee_id), zip_code)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception('Coverage lookup failed for employee %s, ZIP %s', employee_id, zip_code)
            return False
        return best is not None
