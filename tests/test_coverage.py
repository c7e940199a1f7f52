"""
Tests for ZIP coverage resolution
"""
import pytest
import json

import requests

from scoopify import db
from scoopify.models import CoverageArea, ZipLocation
from scoopify.services import coverage
from scoopify.services.coverage import CoverageResolver, HaversineDistance, ZipLocator, haversine_miles


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')

    def json(self):
        return self.payload


class TestHaversine:
    """Test the distance function"""

    def test_same_point_is_zero(self):
        assert haversine_miles(38.8339, -104.8214, 38.8339, -104.8214) == 0

    def test_colorado_springs_to_pueblo(self):
        miles = haversine_miles(38.8339, -104.8214, 38.2713, -104.6105)
        assert 39 < miles < 42


class TestCoverageCheck:
    """Test POST /api/coverage/check"""

    def test_covered_zip_picks_nearest_worker(self, client, employee, employee_b):
        """80909 is within both radii; the 80903 worker is closer"""
        response = client.post('/api/coverage/check', json={'zip_code': '80909'})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['is_covered'] is True
        assert data['matched_employee_id'] == employee.id
        assert data['distance_miles'] < 5

    def test_out_of_range(self, client, employee, employee_b):
        response = client.post('/api/coverage/check', json={'zip_code': '81003'})

        data = json.loads(response.data)
        assert data['is_covered'] is False
        assert data['reason'] == 'out_of_range'

    def test_no_active_coverage(self, client, zip_locations):
        response = client.post('/api/coverage/check', json={'zip_code': '80909'})

        assert json.loads(response.data)['reason'] == 'no_active_coverage'

    def test_inactive_area_ignored(self, client, employee, employee_b):
        CoverageArea.query.filter_by(employee_id=employee.id).update({'is_active': False})
        db.session.commit()

        response = client.post('/api/coverage/check', json={'zip_code': '80909'})

        assert json.loads(response.data)['matched_employee_id'] == employee_b.id

    @pytest.mark.parametrize('zip_code', ['8090', '809091', 'abcde', ''])
    def test_invalid_zip(self, client, zip_code):
        response = client.post('/api/coverage/check', json={'zip_code': zip_code})

        assert response.status_code == 400

    def test_unknown_zip_without_geocoder(self, client, employee):
        """No coordinates and no geocoder: a lookup failure, not an error"""
        response = client.post('/api/coverage/check', json={'zip_code': '99999'})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['is_covered'] is False
        assert data['reason'] == 'distance_lookup_failed'


class TestGeocoderFallback:
    """Test fetching and caching coordinates for unseen ZIPs"""

    def test_geocoded_zip_is_cached(self, app, employee, monkeypatch):
        calls = []

        def fake_get(url, params=None, timeout=None):
            calls.append(params)
            return FakeResponse({'latitude': 38.8697, 'longitude': -104.7603, 'city': 'Colorado Springs', 'state': 'CO'})

        monkeypatch.setattr(coverage.requests, 'get', fake_get)
        resolver = CoverageResolver(HaversineDistance(ZipLocator('https://geo.example.com/zip', timeout=2)))

        first = resolver.check_coverage('80907')
        second = resolver.check_coverage('80907')

        assert first.is_covered is True
        assert second.is_covered is True
        assert calls == [{'zip': '80907'}]
        assert db.session.get(ZipLocation, '80907').city == 'Colorado Springs'

    def test_geocoder_outage(self, app, employee, monkeypatch):
        def down(url, params=None, timeout=None):
            raise requests.ConnectionError('connection refused')

        monkeypatch.setattr(coverage.requests, 'get', down)
        resolver = CoverageResolver(HaversineDistance(ZipLocator('https://geo.example.com/zip')))

        result = resolver.check_coverage('80907')

        assert result.is_covered is False
        assert result.reason == 'distance_lookup_failed'

    def test_geocoder_error_status(self, app, employee, monkeypatch):
        monkeypatch.setattr(coverage.requests, 'get', lambda url, params=None, timeout=None: FakeResponse({}, 503))
        resolver = CoverageResolver(HaversineDistance(ZipLocator('https://geo.example.com/zip')))

        assert resolver.check_coverage('80907').reason == 'distance_lookup_failed'


class TestCoverageAdmin:
    """Test admin management of coverage areas"""

    def test_create_area(self, client, employee, admin_headers):
        response = client.post('/api/admin/coverage-areas', headers=admin_headers, json={
            'employee_id': employee.id,
            'zip_code': '81003',
            'travel_radius_miles': 15,
        })

        assert response.status_code == 201
        assert CoverageArea.query.filter_by(employee_id=employee.id).count() == 2

    def test_invalid_radius(self, client, employee, admin_headers):
        response = client.post('/api/admin/coverage-areas', headers=admin_headers, json={
            'employee_id': employee.id,
            'zip_code': '81003',
            'travel_radius_miles': -1,
        })

        assert response.status_code == 400

    def test_deactivate_area(self, client, employee, admin_headers):
        area = CoverageArea.query.filter_by(employee_id=employee.id).one()

        response = client.delete(f'/api/admin/coverage-areas/{area.id}', headers=admin_headers)

        assert response.status_code == 200
        assert db.session.get(CoverageArea, area.id).is_active is False

    def test_worker_cannot_manage_areas(self, client, employee, employee_headers):
        response = client.get('/api/admin/coverage-areas', headers=employee_headers)

        assert response.status_code == 403
