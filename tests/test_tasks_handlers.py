import json
from unittest.mock import patch

import azure.functions as func

import tasks_handlers
from shared.db import Notification, Task, TaskComment
from workspace_fixtures import WorkspaceTestCase

CORS = {"Vary": "Origin"}


class TaskHandlerTests(WorkspaceTestCase):
    def setUp(self):
        super().setUp()
        patcher = patch.object(tasks_handlers, "SessionLocal", self.Session)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _request(self, method, actor=None, body=None, route_params=None, params=None, workspace=True):
        route = {"workspaceId": self.workspace.id} if workspace else {}
        route.update(route_params or {})
        headers = {"x-user-id": actor.id} if actor else {}
        return func.HttpRequest(
            method=method,
            url="/api/workspaces/tasks",
            headers=headers,
            params=params or {},
            route_params=route,
            body=json.dumps(body).encode() if body is not None else b"",
        )

    @staticmethod
    def _json(resp):
        return json.loads(resp.get_body())

    def _create(self, actor, **fields):
        resp = tasks_handlers.handle_task_create(self._request("POST", actor, self.task_fields(**fields)), CORS)
        self.assertEqual(resp.status_code, 201, resp.get_body())
        return self._json(resp)["task"]

    def test_create_and_fetch(self):
        created = self._create(self.alice, assigneeId=self.bob.id, priority="high")

        self.assertEqual(created["priority"], "HIGH")
        self.assertEqual(created["assigneeName"], "Bob")
        resp = tasks_handlers.handle_task_detail(self._request("GET", self.carol, route_params={"id": created["id"]}), CORS)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers.get("Vary"), "Origin")
        payload = self._json(resp)
        self.assertEqual(payload["task"]["title"], "Write release notes")
        self.assertEqual(payload["activities"][0]["activityType"], "CREATED")

    def test_outsider_cannot_read_task_detail(self):
        created = self._create(self.alice, description="Quarterly numbers")

        resp = tasks_handlers.handle_task_detail(
            self._request("GET", self.outsider, route_params={"id": created["id"]}), CORS
        )
        self.assertEqual(resp.status_code, 403)
        payload = self._json(resp)
        self.assertEqual(payload["error"], "forbidden")
        self.assertNotIn("task", payload)

    def test_missing_actor_header_is_bad_request(self):
        resp = tasks_handlers.handle_task_create(self._request("POST", None, self.task_fields()), CORS)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self._json(resp)["error"], "validation_failed")

    def test_error_mapping(self):
        created = self._create(self.alice)
        route = {"id": created["id"]}

        forbidden = tasks_handlers.handle_task_update(
            self._request("PATCH", self.carol, {"status": "DONE"}, route_params=route), CORS
        )
        invalid = tasks_handlers.handle_task_update(
            self._request("PATCH", self.alice, {"assigneeId": self.outsider.id}, route_params=route), CORS
        )
        bad = tasks_handlers.handle_task_update(
            self._request("PATCH", self.alice, {"status": "someday"}, route_params=route), CORS
        )
        missing = tasks_handlers.handle_task_detail(
            self._request("GET", self.alice, route_params={"id": "4b0e7a54-9d0c-4c5e-a3a9-52f5d7e0c1aa"}), CORS
        )

        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(self._json(forbidden)["error"], "forbidden")
        self.assertEqual(invalid.status_code, 422)
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(self._json(missing)["entity"], "task")

    def test_update_then_delete(self):
        created = self._create(self.alice)
        route = {"id": created["id"]}

        updated = tasks_handlers.handle_task_update(
            self._request("PATCH", self.alice, {"status": "in progress"}, route_params=route), CORS
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(self._json(updated)["task"]["status"], "IN_PROGRESS")

        deleted = tasks_handlers.handle_task_delete(self._request("DELETE", self.alice, route_params=route), CORS)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.db.query(Task).count(), 0)
        after = tasks_handlers.handle_task_detail(self._request("GET", self.alice, route_params=route), CORS)
        self.assertEqual(after.status_code, 404)

    def test_comment_with_mention_reaches_inbox_and_notifications(self):
        created = self._create(self.alice)
        resp = tasks_handlers.handle_comment_create(
            self._request(
                "POST",
                self.bob,
                {"content": f"{self.mention(self.carol)} over to you"},
                route_params={"id": created["id"]},
            ),
            CORS,
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(self.db.query(TaskComment).count(), 1)
        self.assertEqual(self.db.query(Notification).filter_by(user_id=self.carol.id).count(), 1)

        inbox = tasks_handlers.handle_mentions(self._request("GET", self.carol, params={"pageSize": "5"}), CORS)
        self.assertEqual(inbox.status_code, 200)
        items = self._json(inbox)["items"]
        self.assertEqual([item["type"] for item in items], ["COMMENT"])

        feed = tasks_handlers.handle_my_tasks(self._request("GET", self.carol), CORS)
        rows = self._json(feed)["tasks"]
        self.assertEqual(len(rows), 1)
        self.assertTrue(rows[0]["isMentioned"])

        listed = tasks_handlers.handle_notifications_list(self._request("GET", self.carol), CORS)
        notification = self._json(listed)["notifications"][0]
        self.assertEqual(notification["title"], "New Mention")
        read = tasks_handlers.handle_notification_read(
            self._request("POST", self.carol, route_params={"id": notification["id"]}, workspace=False), CORS
        )
        self.assertEqual(read.status_code, 200)
        again = tasks_handlers.handle_notification_read(
            self._request("POST", self.bob, route_params={"id": notification["id"]}, workspace=False), CORS
        )
        self.assertEqual(again.status_code, 404)

    def test_empty_comment_is_bad_request(self):
        created = self._create(self.alice)
        resp = tasks_handlers.handle_comment_create(
            self._request("POST", self.bob, {"content": ""}, route_params={"id": created["id"]}), CORS
        )
        self.assertEqual(resp.status_code, 400)

    def test_chat_message(self):
        resp = tasks_handlers.handle_chat_message_create(
            self._request("POST", self.alice, {"content": f"hi {self.mention(self.bob)}"}), CORS
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(self._json(resp)["message"]["senderId"], self.alice.id)

        denied = tasks_handlers.handle_chat_message_create(
            self._request("POST", self.outsider, {"content": "hello"}), CORS
        )
        self.assertEqual(denied.status_code, 403)

    def test_non_member_feed_is_empty(self):
        self._create(self.alice)
        resp = tasks_handlers.handle_my_tasks(self._request("GET", self.outsider), CORS)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self._json(resp)["tasks"], [])
