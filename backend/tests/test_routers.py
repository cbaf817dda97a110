"""
Research Gate Backend — Resource Router Tests
===============================================

What:  Endpoint behavior of the auth, posts, user and notifications routers.
How:   Requests go through the full app; the fake collections from conftest
       stand in for MongoDB and record what the routers asked for.

What we test:
    ✅ Registration hashes the password and issues a verification code
    ✅ Missing / malformed fields → 400 with a specific message
    ✅ Login refuses bad credentials and unverified accounts
    ✅ Legacy bcrypt hashes still log in and are rehashed; unreadable hashes are bad credentials
    ✅ Password hashing runs off the event loop
    ✅ Post lookups validate ids and report "Post not found" as 400
    ✅ Pagination meta, like toggling, comment notifications
    ✅ Profiles never expose the password hash
    ✅ Driver errors become 500s
"""

import asyncio
from datetime import datetime, timezone

import bcrypt
import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from research_gate.routes.auth import hash_password, pwd_context, verify_password
from research_gate.routes.base import serialize
from research_gate.routes.health import STATIC_ROUTES

from conftest import make_cursor


def stored_user(**overrides):
    user = {
        "_id": ObjectId(),
        "name": "Nusrat Jahan",
        "email": "nusrat@mbstu.ac.bd",
        "password": pwd_context.hash("secret123"),
        "department": "CSE",
        "is_verified": True,
        "created_at": datetime(2024, 1, 15, tzinfo=timezone.utc),
    }
    user.update(overrides)
    return user


class TestAuthRouter:

    @pytest.mark.asyncio
    async def test_register_success(self, connected_client, collections, verification_sender):
        response = await connected_client.post("/api/auth/register", json={
            "name": "Nusrat Jahan",
            "email": "Nusrat@MBSTU.ac.bd",
            "password": "secret123",
            "department": "CSE",
        })
        body = response.json()

        assert response.status_code == 200
        assert body["success"] is True
        assert body["needsVerification"] is True
        assert body["message"] == "Registration successful! Please verify your email."
        assert body["userId"]

        document = collections["users"].insert_one.call_args.args[0]
        assert document["email"] == "nusrat@mbstu.ac.bd"
        assert document["password"] != "secret123"
        assert pwd_context.verify("secret123", document["password"])
        assert document["is_verified"] is False
        verification_sender.send.assert_awaited_once_with(
            "nusrat@mbstu.ac.bd", document["verification_code"]
        )

    @pytest.mark.asyncio
    async def test_register_missing_email(self, connected_client):
        response = await connected_client.post("/api/auth/register", json={
            "name": "No Email",
            "password": "secret123",
        })
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "email required"}

    @pytest.mark.asyncio
    async def test_register_invalid_email(self, connected_client):
        response = await connected_client.post("/api/auth/register", json={
            "name": "Bad Email",
            "email": "not-an-email",
            "password": "secret123",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "email: invalid email address"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, connected_client, collections):
        collections["users"].find_one.return_value = stored_user()
        response = await connected_client.post("/api/auth/register", json={
            "name": "Nusrat Jahan",
            "email": "nusrat@mbstu.ac.bd",
            "password": "secret123",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "User already exists with this email"
        collections["users"].insert_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_register_invalid_json(self, connected_client):
        response = await connected_client.post(
            "/api/auth/register",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Request body must be valid JSON"

    @pytest.mark.asyncio
    async def test_login_success_hides_secrets(self, connected_client, collections):
        user = stored_user(verification_code="123456")
        collections["users"].find_one.return_value = user

        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "secret123",
        })
        body = response.json()

        assert response.status_code == 200
        assert body["user"]["id"] == str(user["_id"])
        assert "password" not in body["user"]
        assert "verification_code" not in body["user"]

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, connected_client, collections):
        collections["users"].find_one.return_value = stored_user()
        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "wrong-password",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_unverified(self, connected_client, collections):
        collections["users"].find_one.return_value = stored_user(is_verified=False)
        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "secret123",
        })
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Please verify your email before logging in",
            "needsVerification": True,
        }

    @pytest.mark.asyncio
    async def test_login_with_legacy_bcrypt_hash(self, connected_client, collections):
        legacy = bcrypt.hashpw(b"secret123", bcrypt.gensalt(rounds=4, prefix=b"2a")).decode()
        user = stored_user(password=legacy)
        collections["users"].find_one.return_value = user

        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "secret123",
        })

        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(user["_id"])
        query, update = collections["users"].update_one.call_args.args
        assert query == {"_id": user["_id"]}
        assert update["$set"]["password"].startswith("$pbkdf2-sha256$")

    @pytest.mark.asyncio
    async def test_login_legacy_hash_wrong_password(self, connected_client, collections):
        legacy = bcrypt.hashpw(b"secret123", bcrypt.gensalt(rounds=4, prefix=b"2a")).decode()
        collections["users"].find_one.return_value = stored_user(password=legacy)

        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "wrong-password",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored", [None, "", "not-a-known-hash-format"])
    async def test_login_unreadable_hash_is_bad_credentials(self, connected_client, collections, stored):
        user = stored_user()
        if stored is None:
            del user["password"]
        else:
            user["password"] = stored
        collections["users"].find_one.return_value = user

        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "secret123",
        })
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid email or password"}

    @pytest.mark.asyncio
    async def test_verify_code(self, connected_client, collections):
        user = stored_user(is_verified=False, verification_code="654321")
        collections["users"].find_one.return_value = user

        response = await connected_client.post("/api/auth/verify", json={
            "email": "nusrat@mbstu.ac.bd",
            "code": "654321",
        })

        assert response.status_code == 200
        assert response.json()["message"] == "Email verified successfully"
        query, update = collections["users"].update_one.call_args.args
        assert query == {"_id": user["_id"]}
        assert update["$set"]["is_verified"] is True

    @pytest.mark.asyncio
    async def test_verify_wrong_code(self, connected_client, collections):
        collections["users"].find_one.return_value = stored_user(
            is_verified=False, verification_code="654321"
        )
        response = await connected_client.post("/api/auth/verify", json={
            "email": "nusrat@mbstu.ac.bd",
            "code": "000000",
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid verification code"

    @pytest.mark.asyncio
    async def test_driver_error_is_500(self, connected_client, collections):
        collections["users"].find_one.side_effect = ServerSelectionTimeoutError("no servers")
        response = await connected_client.post("/api/auth/login", json={
            "email": "nusrat@mbstu.ac.bd",
            "password": "secret123",
        })
        body = response.json()
        assert response.status_code == 500
        assert body["message"] == "Something went wrong!"
        assert body["detail"] == "no servers"

    @pytest.mark.asyncio
    async def test_unknown_auth_endpoint(self, connected_client):
        response = await connected_client.get("/api/auth/register")
        assert response.status_code == 404
        assert response.json()["available_routes"][:len(STATIC_ROUTES)] == list(STATIC_ROUTES)


class TestPostsRouter:

    @pytest.mark.asyncio
    async def test_invalid_post_id(self, connected_client):
        response = await connected_client.get("/api/posts/not-an-object-id")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid post id"

    @pytest.mark.asyncio
    async def test_post_not_found_is_400(self, connected_client):
        response = await connected_client.get(f"/api/posts/{ObjectId()}")
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Post not found"}

    @pytest.mark.asyncio
    async def test_list_posts_pagination(self, connected_client, collections):
        author = ObjectId()
        docs = [
            {"_id": ObjectId(), "title": f"Paper {i}", "author": author, "tags": ["nlp"]}
            for i in range(2)
        ]
        posts = collections["posts"]
        posts.count_documents.return_value = 12
        posts.find.return_value = make_cursor(docs)

        response = await connected_client.get("/api/posts?page=2&limit=5&tag=NLP")
        body = response.json()

        assert response.status_code == 200
        assert body["meta"] == {"page": 2, "limit": 5, "total": 12, "pages": 3}
        assert [p["title"] for p in body["posts"]] == ["Paper 0", "Paper 1"]
        assert body["posts"][0]["author"] == str(author)
        posts.find.assert_called_once_with({"tags": "nlp"})
        posts.find.return_value.skip.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_list_posts_bad_limit(self, connected_client):
        response = await connected_client.get("/api/posts?limit=abc")
        assert response.status_code == 400
        assert response.json()["message"] == "limit must be an integer"

    @pytest.mark.asyncio
    async def test_create_post(self, connected_client, collections):
        author = ObjectId()
        collections["users"].find_one.return_value = {"_id": author}

        response = await connected_client.post("/api/posts", json={
            "title": "Graph Neural Networks for Crop Yield",
            "content": "Abstract...",
            "author": str(author),
            "tags": ["GNN", " agriculture "],
        })
        body = response.json()

        assert response.status_code == 200
        assert body["message"] == "Post created successfully"
        assert body["post"]["author"] == str(author)
        assert body["post"]["likes"] == []

    @pytest.mark.asyncio
    async def test_create_post_unknown_author(self, connected_client):
        response = await connected_client.post("/api/posts", json={
            "title": "Orphan",
            "content": "No author",
            "author": str(ObjectId()),
        })
        assert response.status_code == 400
        assert response.json()["message"] == "Author not found"

    @pytest.mark.asyncio
    async def test_create_post_missing_title(self, connected_client):
        response = await connected_client.post("/api/posts", json={
            "content": "Body only",
            "author": str(ObjectId()),
        })
        assert response.status_code == 400
        assert response.json()["message"] == "title required"

    @pytest.mark.asyncio
    async def test_toggle_like(self, connected_client, collections):
        user = ObjectId()
        post_id = ObjectId()
        posts = collections["posts"]
        posts.find_one.return_value = {"_id": post_id, "likes": []}
        posts.find_one_and_update.return_value = {"_id": post_id, "likes": [user]}

        response = await connected_client.post(f"/api/posts/{post_id}/like", json={"user": str(user)})
        body = response.json()

        assert response.status_code == 200
        assert body["liked"] is True
        assert body["likes"] == 1
        assert posts.find_one_and_update.call_args.args[1] == {"$addToSet": {"likes": user}}

    @pytest.mark.asyncio
    async def test_comment_notifies_post_author(self, connected_client, collections):
        post_author = ObjectId()
        commenter = ObjectId()
        post_id = ObjectId()
        collections["posts"].find_one_and_update.return_value = {
            "_id": post_id, "author": post_author, "title": "Crop Yield",
        }

        response = await connected_client.post(
            f"/api/posts/{post_id}/comments",
            json={"author": str(commenter), "text": "  Great work!  "},
        )

        assert response.status_code == 200
        assert response.json()["comment"]["text"] == "Great work!"
        notification = collections["notifications"].insert_one.call_args.args[0]
        assert notification["user"] == post_author
        assert notification["type"] == "comment"
        assert notification["link"] == f"/posts/{post_id}"

    @pytest.mark.asyncio
    async def test_delete_missing_post(self, connected_client, collections):
        collections["posts"].delete_one.return_value.deleted_count = 0
        response = await connected_client.delete(f"/api/posts/{ObjectId()}")
        assert response.status_code == 400
        assert response.json()["message"] == "Post not found"


class TestUserRouter:

    @pytest.mark.asyncio
    async def test_get_profile(self, connected_client, collections):
        user = stored_user()
        del user["password"]
        collections["users"].find_one.return_value = user

        response = await connected_client.get(f"/api/user/{user['_id']}")
        body = response.json()

        assert response.status_code == 200
        assert body["user"]["name"] == "Nusrat Jahan"
        projection = collections["users"].find_one.call_args.args[1]
        assert projection == {"password": 0, "verification_code": 0}

    @pytest.mark.asyncio
    async def test_update_profile_requires_fields(self, connected_client):
        response = await connected_client.put(f"/api/user/{ObjectId()}", json={})
        assert response.status_code == 400
        assert response.json()["message"] == "No profile fields to update"

    @pytest.mark.asyncio
    async def test_update_profile(self, connected_client, collections):
        user = stored_user(bio="Soil scientist")
        collections["users"].find_one_and_update.return_value = user

        response = await connected_client.put(
            f"/api/user/{user['_id']}", json={"bio": "Soil scientist", "password": "ignored"}
        )

        assert response.status_code == 200
        update = collections["users"].find_one_and_update.call_args.args[1]
        assert update["$set"]["bio"] == "Soil scientist"
        assert "password" not in update["$set"]
        assert "password" not in response.json()["user"]


class TestNotificationsRouter:

    @pytest.mark.asyncio
    async def test_list_requires_user(self, connected_client):
        response = await connected_client.get("/api/notifications")
        assert response.status_code == 400
        assert response.json()["message"] == "user query parameter required"

    @pytest.mark.asyncio
    async def test_list_with_unread_count(self, connected_client, collections):
        user = ObjectId()
        notifications = collections["notifications"]
        notifications.find.return_value = make_cursor([
            {"_id": ObjectId(), "user": user, "message": "New comment", "read": False},
        ])
        notifications.count_documents.return_value = 1

        response = await connected_client.get(f"/api/notifications?user={user}")
        body = response.json()

        assert response.status_code == 200
        assert len(body["notifications"]) == 1
        assert body["meta"]["unreadCount"] == 1

    @pytest.mark.asyncio
    async def test_read_all_is_not_treated_as_an_id(self, connected_client, collections):
        user = ObjectId()
        collections["notifications"].update_many.return_value.modified_count = 3

        response = await connected_client.put(f"/api/notifications/read-all?user={user}")

        assert response.status_code == 200
        assert response.json()["updated"] == 3

    @pytest.mark.asyncio
    async def test_mark_missing_notification(self, connected_client, collections):
        collections["notifications"].update_one.return_value.matched_count = 0
        response = await connected_client.put(f"/api/notifications/{ObjectId()}/read")
        assert response.status_code == 400
        assert response.json()["message"] == "Notification not found"


class TestSerialize:

    def test_serialize_renames_id_and_drops_secrets(self):
        oid = ObjectId()
        created = datetime(2024, 1, 15, tzinfo=timezone.utc)
        out = serialize({"_id": oid, "password": "hash", "created_at": created, "likes": [oid]})

        assert out == {"id": str(oid), "created_at": created.isoformat(), "likes": [str(oid)]}

    def test_serialize_empty(self):
        assert serialize(None) == {}


class TestPasswordHashing:

    @pytest.mark.asyncio
    async def test_hashing_leaves_event_loop_free(self):
        ticks = 0
        done = False

        async def ticker():
            nonlocal ticks
            while not done:
                ticks += 1
                await asyncio.sleep(0)

        task = asyncio.create_task(ticker())
        stored = await hash_password("secret123")
        matches, _ = await verify_password("secret123", stored)
        done = True
        await task

        assert matches
        assert ticks > 0

    @pytest.mark.asyncio
    async def test_verify_password_without_hash(self):
        assert await verify_password("secret123", None) == (False, None)
