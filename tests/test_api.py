from __future__ import annotations

import unittest
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select

from db_fixtures import add_material, add_venue, make_session_factory
from venue_inventory.db import get_db
from venue_inventory.main import app
from venue_inventory.models import AuthEvent, Principal, PrincipalRole
from venue_inventory.security.passwords import hash_password

PASSWORD = 'correct horse battery'


class InventoryApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()

        def _get_db():
            with self.session_factory() as db:
                yield db

        app.dependency_overrides[get_db] = _get_db
        self.client = TestClient(app)

        with self.session_factory() as db:
            venue = add_venue(db, name='Main Street')
            other = add_venue(db, name='Harbour')
            material = add_material(db, venue, name='Flour', sku='F-1', current_stock='10', cost_per_unit='2')
            password_hash = hash_password(PASSWORD)
            for username, role in (('manager', PrincipalRole.MANAGER), ('staff', PrincipalRole.STAFF)):
                db.add(Principal(username=username, password_hash=password_hash, role=role, venue_id=venue.id, active=True))
            db.commit()
            self.venue_id = venue.id
            self.other_venue_id = other.id
            self.material_id = material.id

        self.manager = self._login('manager')
        self.staff = self._login('staff')

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.client.close()

    def _login(self, username: str) -> dict[str, str]:
        response = self.client.post('/auth/login', json={'username': username, 'password': PASSWORD})
        self.assertEqual(response.status_code, 200, response.text)
        self.client.cookies.clear()
        return {'Authorization': f"Bearer {response.json()['token']}"}

    def _materials_url(self, suffix: str = '', venue_id: int | None = None) -> str:
        return f'/venues/{venue_id or self.venue_id}/inventory/raw-materials{suffix}'

    def _adjust(self, body: dict, headers: dict[str, str] | None = None):
        return self.client.post(
            self._materials_url(f'/{self.material_id}/adjust'),
            json=body,
            headers=headers or self.manager,
        )

    def test_health_and_security_headers(self) -> None:
        response = self.client.get('/health')

        self.assertEqual(response.json(), {'status': 'ok'})
        self.assertEqual(response.headers['x-content-type-options'], 'nosniff')
        self.assertIn('noindex', response.headers['x-robots-tag'])

    def test_bad_password_is_rejected_and_recorded(self) -> None:
        response = self.client.post('/auth/login', json={'username': 'manager', 'password': 'nope'})

        self.assertEqual(response.status_code, 401)
        with self.session_factory() as db:
            event = db.execute(select(AuthEvent).where(AuthEvent.success.is_(False))).scalar_one()
        self.assertEqual(event.failure_reason, 'BAD_PASSWORD')

    def test_requests_without_a_session_are_unauthorized(self) -> None:
        response = self.client.get(self._materials_url())

        self.assertEqual(response.status_code, 401)

    def test_small_adjustment_commits(self) -> None:
        response = self._adjust({'type': 'USAGE', 'quantity': '-3'})

        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(Decimal(response.json()['new_stock']), Decimal('7'))
        material = self.client.get(self._materials_url(f'/{self.material_id}'), headers=self.staff).json()
        self.assertEqual(Decimal(material['current_stock']), Decimal('7'))
        self.assertEqual(material['currency'], 'USD')

    def test_large_adjustment_needs_confirmation(self) -> None:
        proposal = self._adjust({'type': 'SPOILAGE', 'quantity': '-6', 'reason': 'Fridge failure'})

        self.assertEqual(proposal.status_code, 202, proposal.text)
        body = proposal.json()
        self.assertTrue(body['confirmation_required'])
        self.assertEqual(Decimal(body['projected_stock']), Decimal('4'))

        confirmed = self._adjust(
            {'type': 'SPOILAGE', 'quantity': '-6', 'reason': 'Fridge failure', 'confirmation_token': body['token']}
        )
        self.assertEqual(confirmed.status_code, 201, confirmed.text)

        replayed = self._adjust(
            {'type': 'SPOILAGE', 'quantity': '-6', 'reason': 'Fridge failure', 'confirmation_token': body['token']}
        )
        self.assertEqual(replayed.status_code, 201)
        self.assertEqual(replayed.json()['id'], confirmed.json()['id'])

        movements = self.client.get(self._materials_url(f'/{self.material_id}/movements'), headers=self.manager).json()
        self.assertEqual(len(movements), 1)

    def test_float_quantities_are_rejected(self) -> None:
        response = self._adjust({'type': 'USAGE', 'quantity': -1.5})

        self.assertEqual(response.status_code, 422)

    def test_negative_stock_error_payload(self) -> None:
        response = self._adjust({'type': 'USAGE', 'quantity': '-3'})
        self.assertEqual(response.status_code, 201)
        response = self._adjust({'type': 'USAGE', 'quantity': '-3'})
        self.assertEqual(response.status_code, 201)

        response = self._adjust({'type': 'USAGE', 'quantity': '-5'})

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body['error'], 'NEGATIVE_STOCK')
        self.assertEqual(Decimal(body['current_stock']), Decimal('4'))
        self.assertIn('detail', body)

    def test_unknown_material_is_not_found(self) -> None:
        response = self.client.get(self._materials_url('/999999'), headers=self.manager)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'NOT_FOUND')

    def test_other_venue_is_forbidden(self) -> None:
        response = self.client.get(self._materials_url(venue_id=self.other_venue_id), headers=self.manager)

        self.assertEqual(response.status_code, 403)

    def test_staff_can_adjust_but_not_create(self) -> None:
        created = self.client.post(
            self._materials_url(),
            json={'name': 'Salt', 'unit': 'KILOGRAM'},
            headers=self.staff,
        )
        self.assertEqual(created.status_code, 403)

        adjusted = self._adjust({'type': 'USAGE', 'quantity': '-1'}, headers=self.staff)
        self.assertEqual(adjusted.status_code, 201)

    def test_manager_creates_material_with_generated_sku(self) -> None:
        response = self.client.post(
            self._materials_url(),
            json={'name': '  Salt ', 'unit': 'KILOGRAM', 'current_stock': '4', 'reorder_point': '1'},
            headers=self.manager,
        )

        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertEqual(body['name'], 'Salt')
        self.assertRegex(body['sku'], r'^[A-Z]\d{6}$')
        movements = self.client.get(self._materials_url(f"/{body['id']}/movements"), headers=self.manager).json()
        self.assertEqual([movement['type'] for movement in movements], ['COUNT'])

    def test_logout_revokes_session(self) -> None:
        response = self.client.post('/auth/logout', headers=self.manager)
        self.assertEqual(response.status_code, 204)

        response = self.client.get(self._materials_url(), headers=self.manager)
        self.assertEqual(response.status_code, 401)


if __name__ == '__main__':
    unittest.main()
