"""
Integration Tests - Service lifecycle

Module: tests.test_service
Date: 2025-11-23
Version: 0.1.0

Gherkin Scenarios Tested:
1. Démarrage: store vérifié puis deux abonnements en groupe UNIQUER
2. Une requête traverse le bus et reçoit une réponse signée
3. Arrêt: les handlers en cours se terminent, puis tout est fermé
4. Échecs de démarrage: seed invalide, store ou bus injoignable
5. Health check et statistiques (aiohttp)
"""

import asyncio
import unittest
from datetime import timezone
from unittest.mock import AsyncMock

from aiohttp.test_utils import TestClient, TestServer

from uniq_server.core.config import ServiceConfig
from uniq_server.core.health_server import HealthServer
from uniq_server.core.uniq_service import UniqService, ServiceStartupError
from uniq_server.persistence import (
    MemoryReservationStore,
    ReservationStore,
    ReservationStoreError,
    reservation_key,
)
from uniq_server.security.authentication import decode_claims

from callout_fixtures import (
    TEST_ACCOUNTS,
    FAST_BCRYPT_ROUNDS,
    LoopbackTransport,
    make_disconnect_event,
    make_request_token,
    server_keypair,
)


def make_config() -> ServiceConfig:
    return ServiceConfig(accounts=TEST_ACCOUNTS, bcrypt_rounds=FAST_BCRYPT_ROUNDS)


class TestServiceLifecycle(unittest.TestCase):
    """Start / serve / stop"""

    def setUp(self):
        self.transport = LoopbackTransport()
        self.store = MemoryReservationStore()
        self.service = UniqService(make_config(), transport=self.transport, store=self.store)

    def test_scenario_1_startup_subscribes_in_queue_group(self):
        """
        Scenario: Démarrage
        Given: a reachable store and bus
        When: the service starts
        Then: it subscribes to auth requests and disconnects in queue UNIQUER
        """
        async def test():
            await self.service.start()

            self.assertTrue(self.service.is_running)
            self.assertEqual(self.transport.commands, [
                ("SUB", "$SYS.REQ.USER.AUTH", "UNIQUER"),
                ("SUB", "$SYS.ACCOUNT.*.DISCONNECT", "UNIQUER"),
            ])
            status = self.service.get_status()
            self.assertEqual(status.name, "UNIQUER")
            self.assertEqual(status.bus_status, "connected")
            self.assertEqual(len(status.subscriptions), 2)
            self.assertIs(status.timestamp.tzinfo, timezone.utc)
            self.assertGreaterEqual(self.service.uptime_seconds, 0)

            await self.service.stop()

        asyncio.run(test())

    def test_scenario_2_request_answered_over_bus(self):
        async def test():
            await self.service.start()
            server = server_keypair()
            token = make_request_token(server, client_name="alice", client_id=1)

            matched = self.transport.inject(
                "$SYS.REQ.USER.AUTH", token.encode(), reply="_INBOX.abc"
            )
            self.assertEqual(matched, 1)

            await self.service.stop()

            self.assertEqual(len(self.transport.published), 1)
            subject, data = self.transport.published[0]
            self.assertEqual(subject, "_INBOX.abc")
            claims = decode_claims(data.decode())
            self.assertEqual(decode_claims(claims["nats"]["jwt"])["aud"], "APP")
            self.assertEqual(await self.store.owner(reservation_key("alice")), 1)

        asyncio.run(test())

    def test_disconnect_advisory_releases_name(self):
        async def test():
            await self.service.start()
            await self.store.claim(reservation_key("alice"), 4)

            self.transport.inject(
                "$SYS.ACCOUNT.APP.DISCONNECT",
                make_disconnect_event("APP", "alice", 4),
            )
            await self.service.stop()

            self.assertIsNone(await self.store.owner(reservation_key("alice")))
            self.assertEqual(self.service.get_stats()["disconnect"]["released"], 1)

        asyncio.run(test())

    def test_scenario_3_stop_drains_then_closes(self):
        """
        Scenario: Arrêt
        Given: a request being handled
        When: the service stops
        Then: the request still gets its reply
              And the bus is closed after the subscriptions
        """
        async def test():
            await self.service.start()
            server = server_keypair()
            for conn_id in range(5):
                token = make_request_token(
                    server, client_name=f"c{conn_id}", client_id=conn_id
                )
                self.transport.inject("$SYS.REQ.USER.AUTH", token.encode(), reply=f"_R.{conn_id}")

            await self.service.stop()

            self.assertEqual(len(self.transport.published), 5)
            self.assertFalse(self.service.is_running)
            self.assertTrue(self.transport.is_closed)
            self.assertEqual(self.transport.subscriptions, {})

        asyncio.run(test())

    def test_run_returns_on_request_stop(self):
        async def test():
            task = asyncio.create_task(self.service.run())
            for _ in range(100):
                if self.service.is_running:
                    break
                await asyncio.sleep(0.01)
            self.assertTrue(self.service.is_running)

            self.service.request_stop()
            await asyncio.wait_for(task, 2.0)

            self.assertFalse(self.service.is_running)
            self.assertTrue(self.transport.is_closed)

        asyncio.run(test())

    def test_run_returns_when_bus_closes(self):
        async def test():
            task = asyncio.create_task(self.service.run())
            for _ in range(100):
                if self.service.is_running:
                    break
                await asyncio.sleep(0.01)

            await self.transport.close()
            await asyncio.wait_for(task, 2.0)

            self.assertFalse(self.service.is_running)

        asyncio.run(test())


class TestStartupFailures(unittest.TestCase):
    """
    Scenario: Échecs de démarrage
    Then: ServiceStartupError is raised before anything is subscribed
    """

    def test_invalid_seed(self):
        async def test():
            config = make_config()
            config.seed = "SNOTAVALIDSEED"
            transport = LoopbackTransport()
            service = UniqService(config, transport=transport, store=MemoryReservationStore())

            with self.assertRaises(ServiceStartupError):
                await service.start()
            self.assertEqual(transport.connect_calls, 0)

        asyncio.run(test())

    def test_store_unreachable(self):
        async def test():
            store = AsyncMock(spec=ReservationStore)
            store.ping.side_effect = ReservationStoreError("connection refused")
            transport = LoopbackTransport()
            service = UniqService(make_config(), transport=transport, store=store)

            with self.assertRaises(ServiceStartupError):
                await service.start()
            self.assertEqual(transport.connect_calls, 0)
            store.close.assert_awaited()

        asyncio.run(test())

    def test_bus_unreachable(self):
        async def test():
            store = AsyncMock(spec=ReservationStore)
            transport = LoopbackTransport(fail_connect=True)
            service = UniqService(make_config(), transport=transport, store=store)

            with self.assertRaises(ServiceStartupError):
                await service.start()
            self.assertFalse(service.is_running)
            self.assertEqual(transport.commands, [])
            store.close.assert_awaited()

        asyncio.run(test())


class TestHealthEndpoint(unittest.TestCase):
    """
    Scenario: Health check
    Given: a running service
    When: GET /health and GET /stats
    Then: health reports store and bus, stats reports handler counters
    """

    def test_health_and_stats(self):
        async def test():
            transport = LoopbackTransport()
            service = UniqService(
                make_config(), transport=transport, store=MemoryReservationStore()
            )
            await service.start()
            health = HealthServer(service, "127.0.0.1", 0)

            async with TestClient(TestServer(health.app)) as client:
                response = await client.get("/health")
                self.assertEqual(response.status, 200)
                body = await response.json()
                self.assertEqual(body["status"], "healthy")
                self.assertEqual(body["store"], "up")
                self.assertEqual(body["bus"], "connected")
                self.assertIn("latency_ms", body)

                response = await client.get("/stats")
                self.assertEqual(response.status, 200)
                body = await response.json()
                self.assertEqual(body["name"], "UNIQUER")
                self.assertEqual(body["auth"]["received"], 0)
                self.assertIn("released", body["disconnect"])

                await service.stop()

                response = await client.get("/health")
                self.assertEqual(response.status, 503)
                self.assertEqual((await response.json())["status"], "unhealthy")

        asyncio.run(test())

    def test_health_reports_store_down(self):
        async def test():
            store = AsyncMock(spec=ReservationStore)
            service = UniqService(make_config(), transport=LoopbackTransport(), store=store)
            await service.start()
            store.ping.side_effect = ReservationStoreError("gone")

            result = await service.check_health()

            self.assertEqual(result["status"], "unhealthy")
            self.assertEqual(result["store"], "down")
            await service.stop()

        asyncio.run(test())


if __name__ == "__main__":
    unittest.main()
