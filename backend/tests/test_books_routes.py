# Overview: Pytest coverage for listings, public profiles, auth routes and health.

from bookmarket.extensions import db
from bookmarket.models import Book, SessionToken
from bookmarket.services.auth_service import create_user

from conftest import auth_headers_for, make_book


class TestListings:
    def test_lists_only_available_books(self, client, gateway, seller, buyer):
        free = make_book(seller, title="Free")
        held = make_book(seller, title="Held")
        client.post(f'/api/books/{held.id}/purchases', headers=auth_headers_for(buyer))

        response = client.get('/api/books/')

        assert response.status_code == 200
        assert [b["id"] for b in response.json["items"]] == [free.id]

    def test_pagination(self, client, seller):
        for i in range(3):
            make_book(seller, title=f"Book {i}")

        response = client.get('/api/books/?page=1&per_page=2')

        assert response.json["count"] == 2
        assert response.json["pagination"]["total"] == 3
        assert response.json["pagination"]["has_next"] is True

    def test_book_detail_reports_availability(self, client, gateway, book, buyer):
        assert client.get(f'/api/books/{book.id}').json["book"]["available"] is True

        client.post(f'/api/books/{book.id}/purchases', headers=auth_headers_for(buyer))

        detail = client.get(f'/api/books/{book.id}').json["book"]
        assert detail["available"] is False
        assert detail["sold"] is False
        assert detail["seller"]["username"] == "seller"

    def test_missing_book(self, client, app):
        assert client.get('/api/books/424242').status_code == 404


class TestCreateListing:
    def test_seller_creates_listing(self, client, seller):
        response = client.post('/api/books/', headers=auth_headers_for(seller), json={
            "title": "Neuromancer",
            "author": "William Gibson",
            "price": "9.99",
            "isbn_13": "978-0-441-56959-5",
        })

        assert response.status_code == 201
        book = response.json["book"]
        assert book["price_cents"] == 999
        assert book["isbn_13"] == "9780441569595"
        assert book["available"] is True

    def test_sold_flag_is_not_accepted(self, client, seller):
        response = client.post('/api/books/', headers=auth_headers_for(seller), json={
            "title": "Neuromancer", "author": "William Gibson", "price": "9.99", "sold": True,
        })

        assert response.status_code == 201
        assert db.session.get(Book, response.json["book"]["id"]).sold is False

    def test_user_without_payout_account_cannot_list(self, client, buyer):
        response = client.post('/api/books/', headers=auth_headers_for(buyer), json={
            "title": "Neuromancer", "author": "William Gibson", "price": "9.99",
        })
        assert response.status_code == 403
        assert response.json["reason"] == "payout_account_required"

    def test_invalid_price(self, client, seller):
        response = client.post('/api/books/', headers=auth_headers_for(seller), json={
            "title": "Neuromancer", "author": "William Gibson", "price": "-1",
        })
        assert response.status_code == 400

    def test_missing_title(self, client, seller):
        response = client.post('/api/books/', headers=auth_headers_for(seller), json={
            "author": "William Gibson", "price": "1.00",
        })
        assert response.status_code == 400
        assert response.json["details"]["field"] == "title"


class TestProfiles:
    def test_public_profile_lists_available_books(self, client, book):
        response = client.get('/api/users/seller')

        assert response.status_code == 200
        assert response.json["user"] == {"id": book.owner_id, "username": "seller"}
        assert [b["id"] for b in response.json["books"]["items"]] == [book.id]

    def test_unknown_profile(self, client, app):
        assert client.get('/api/users/nobody').status_code == 404


class TestAuthRoutes:
    def test_login_and_logout(self, client, app):
        create_user("reader@bookmarket.test", "reader", "Password123!")

        response = client.post('/api/auth/login', json={
            "email": "Reader@Bookmarket.test", "password": "Password123!",
        })
        assert response.status_code == 200
        token = response.json["token"]
        headers = {'Authorization': f'Bearer {token}'}

        assert client.get('/api/auth/me', headers=headers).json["user"]["username"] == "reader"
        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401
        assert db.session.query(SessionToken).one().revoked_reason == "User logout"

    def test_wrong_password(self, client, app):
        create_user("reader@bookmarket.test", "reader", "Password123!")
        response = client.post('/api/auth/login', json={
            "email": "reader@bookmarket.test", "password": "Password123?",
        })
        assert response.status_code == 401

    def test_garbage_token(self, client, app):
        response = client.get('/api/auth/me', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401


class TestHealth:
    def test_health(self, client, app):
        response = client.get('/api/system/health')
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"
