# api/ledger_api.py
"""
HTTP surface of the ledger core (aiohttp).
Route handlers stay thin: parse input, call a service, map the result.
"""
import json
import logging
from datetime import datetime, date
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from config import Config
from core.db import get_session
from mlm_system.services.binary_matching_service import BinaryMatchingService
from mlm_system.services.booster_service import BoosterService
from mlm_system.services.level_unlock_service import LevelUnlockService
from mlm_system.services.withdrawal_service import WithdrawalService
from mlm_system.services.investment_admin_service import InvestmentAdminService

logger = logging.getLogger(__name__)

ADMIN_PREFIX = '/api/admin/'


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


_dumps = partial(json.dumps, default=_json_default)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({'success': False, 'message': message}),
        content_type='application/json'
    )


def _int_param(request: web.Request, name: str) -> int:
    try:
        return int(request.match_info[name])
    except (KeyError, ValueError):
        raise _bad_request(f"Invalid {name}")


def _int_query(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if raw is None:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        raise _bad_request(f"Invalid {name}")


async def _read_json(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except json.JSONDecodeError:
        raise _bad_request('Invalid JSON')
    if not isinstance(data, dict):
        raise _bad_request('JSON object expected')
    return data


def result_response(result: Dict[str, Any]) -> web.Response:
    """Map a service result dict to an HTTP status."""
    if result.get('success'):
        return json_response(result)
    if result.get('code') == 'not_found':
        return json_response(result, status=404)
    if result.get('code'):
        return json_response(result, status=400)
    # Unexpected failure inside the service
    return json_response(result, status=500)


class LedgerApiServer:
    """aiohttp application exposing withdrawals, stats and admin actions."""

    def __init__(self, sessionFactory: Optional[Callable] = None):
        self.sessionFactory = sessionFactory or get_session
        self.app = web.Application(middlewares=[self._error_middleware, self._admin_middleware])
        self.runner: Optional[web.AppRunner] = None
        self.start_time: Optional[datetime] = None

        # Metrics
        self.request_count = 0
        self.error_count = 0

        self.setup_routes()

    def setup_routes(self):
        router = self.app.router

        # User
        router.add_post('/api/withdrawals', self.handle_submit_withdrawal)
        router.add_get('/api/users/{user_id}/withdrawals', self.handle_user_withdrawals)
        router.add_get('/api/users/{user_id}/binary', self.handle_binary_stats)
        router.add_get('/api/users/{user_id}/booster', self.handle_booster_status)
        router.add_get('/api/users/{user_id}/levels', self.handle_level_unlocks)

        # Admin
        router.add_get('/api/admin/withdrawals', self.handle_admin_withdrawals)
        router.add_post('/api/admin/withdrawals/{id}/approve', self.handle_approve_withdrawal)
        router.add_post('/api/admin/withdrawals/{id}/reject', self.handle_reject_withdrawal)
        router.add_post('/api/admin/users/{user_id}/funds', self.handle_add_funds)
        router.add_post('/api/admin/investments/{id}/stop', self.handle_stop_investment)
        router.add_put('/api/admin/investments/{id}/roi', self.handle_adjust_roi)
        router.add_post('/api/admin/binary/run', self.handle_binary_run)

        router.add_get('/api/health', self.handle_health)

    # ═══════════════════════════════════════════════════════════════════════
    # MIDDLEWARE
    # ═══════════════════════════════════════════════════════════════════════

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler):
        self.request_count += 1
        logger.info(f"{request.method} {request.path}")
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            self.error_count += 1
            logger.error(f"Error processing {request.method} {request.path}: {e}", exc_info=True)
            return json_response({'success': False, 'message': 'Internal server error'}, status=500)

    @web.middleware
    async def _admin_middleware(self, request: web.Request, handler):
        if request.path.startswith(ADMIN_PREFIX):
            auth = request.headers.get('Authorization', '')
            token = auth[7:] if auth.startswith('Bearer ') else ''
            if not Config.is_admin_token(token):
                logger.warning(f"Rejected admin request to {request.path} from {request.remote}")
                return json_response({'success': False, 'message': 'Forbidden'}, status=403)
        return await handler(request)

    @staticmethod
    def _admin_id(request: web.Request, body: Dict[str, Any]) -> str:
        return str(body.get('admin_id') or request.headers.get('X-Admin-Id') or 'admin')

    # ═══════════════════════════════════════════════════════════════════════
    # USER ROUTES
    # ═══════════════════════════════════════════════════════════════════════

    async def handle_submit_withdrawal(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        try:
            user_id = int(body['user_id'])
        except (KeyError, TypeError, ValueError):
            raise _bad_request('user_id is required')
        if body.get('amount') is None:
            raise _bad_request('amount is required')

        session = self.sessionFactory()
        try:
            result = await WithdrawalService(session).submitWithdrawalRequest(
                user_id,
                body['amount'],
                walletAddress=body.get('wallet_address'),
                paymentMethod=body.get('payment_method'),
                network=body.get('network')
            )
        finally:
            session.close()

        return result_response(result)

    async def handle_user_withdrawals(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, 'user_id')
        limit = _int_query(request, 'limit', 50)

        session = self.sessionFactory()
        try:
            withdrawals = await WithdrawalService(session).getUserWithdrawals(
                user_id, status=request.query.get('status'), limit=limit
            )
        finally:
            session.close()

        return json_response({'success': True, 'data': withdrawals})

    async def handle_binary_stats(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, 'user_id')

        session = self.sessionFactory()
        try:
            stats = await BinaryMatchingService(session).getUserBinaryStats(user_id)
        finally:
            session.close()

        if stats is None:
            return json_response({'success': False, 'message': 'Binary tree node not found'}, status=404)
        return json_response({'success': True, 'data': stats})

    async def handle_booster_status(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, 'user_id')

        session = self.sessionFactory()
        try:
            status = await BoosterService(session).getBoosterStatus(user_id)
        finally:
            session.close()

        return json_response({'success': True, 'data': status})

    async def handle_level_unlocks(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, 'user_id')

        session = self.sessionFactory()
        try:
            levels = await LevelUnlockService(session).getUserLevelUnlocks(user_id)
        finally:
            session.close()

        if levels is None:
            return json_response({'success': False, 'message': 'User not found'}, status=404)
        return json_response({'success': True, 'data': levels})

    # ═══════════════════════════════════════════════════════════════════════
    # ADMIN ROUTES
    # ═══════════════════════════════════════════════════════════════════════

    async def handle_admin_withdrawals(self, request: web.Request) -> web.Response:
        limit = _int_query(request, 'limit', 100)
        offset = _int_query(request, 'offset', 0)

        session = self.sessionFactory()
        try:
            service = WithdrawalService(session)
            listing = await service.getAllWithdrawals(
                status=request.query.get('status'), limit=limit, offset=offset
            )
            listing['stats'] = await service.getWithdrawalStats()
        finally:
            session.close()

        return json_response({'success': True, 'data': listing})

    async def handle_approve_withdrawal(self, request: web.Request) -> web.Response:
        withdrawal_id = _int_param(request, 'id')
        body = await _read_json(request)

        session = self.sessionFactory()
        try:
            result = await WithdrawalService(session).approveWithdrawal(
                withdrawal_id, self._admin_id(request, body)
            )
        finally:
            session.close()

        return result_response(result)

    async def handle_reject_withdrawal(self, request: web.Request) -> web.Response:
        withdrawal_id = _int_param(request, 'id')
        body = await _read_json(request)
        reason = body.get('reason')
        if not reason:
            raise _bad_request('reason is required')

        session = self.sessionFactory()
        try:
            result = await WithdrawalService(session).rejectWithdrawal(
                withdrawal_id, self._admin_id(request, body), reason
            )
        finally:
            session.close()

        return result_response(result)

    async def handle_add_funds(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, 'user_id')
        body = await _read_json(request)
        if body.get('amount') is None:
            raise _bad_request('amount is required')

        session = self.sessionFactory()
        try:
            result = await WithdrawalService(session).adminAddFunds(
                user_id,
                body['amount'],
                self._admin_id(request, body),
                body.get('description')
            )
        finally:
            session.close()

        return result_response(result)

    async def handle_stop_investment(self, request: web.Request) -> web.Response:
        package_id = _int_param(request, 'id')
        body = await _read_json(request)

        session = self.sessionFactory()
        try:
            result = await InvestmentAdminService(session).stopInvestment(
                package_id, body.get('reason')
            )
        finally:
            session.close()

        return result_response(result)

    async def handle_adjust_roi(self, request: web.Request) -> web.Response:
        package_id = _int_param(request, 'id')
        body = await _read_json(request)
        if not body.get('adjustment_amount'):
            raise _bad_request('Adjustment amount is required')

        session = self.sessionFactory()
        try:
            result = await InvestmentAdminService(session).adjustRoi(
                package_id, body['adjustment_amount'], body.get('reason')
            )
        finally:
            session.close()

        return result_response(result)

    async def handle_binary_run(self, request: web.Request) -> web.Response:
        session = self.sessionFactory()
        try:
            summary = await BinaryMatchingService(session).runBinaryMatchingForAll()
        finally:
            session.close()

        return json_response({'success': True, 'data': summary})

    async def handle_health(self, request: web.Request) -> web.Response:
        uptime = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0
        return json_response({
            'status': 'ok',
            'uptime': uptime,
            'requests_total': self.request_count,
            'errors_total': self.error_count
        })

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    async def start(self, host: str = '127.0.0.1', port: int = 8080) -> web.AppRunner:
        self.start_time = datetime.now()

        if host == '0.0.0.0':
            logger.warning("⚠️ Ledger API listening on all interfaces!")

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, host, port)
        await site.start()

        logger.info(f"Ledger API started on {host}:{port}")
        return self.runner

    async def stop(self):
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Ledger API stopped")


async def start_api_server() -> LedgerApiServer:
    """Start the API on API_HOST:API_PORT."""
    server = LedgerApiServer()
    await server.start(
        host=Config.get(Config.API_HOST, '127.0.0.1'),
        port=int(Config.get(Config.API_PORT, 8080))
    )
    return server
