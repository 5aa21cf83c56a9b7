"""Admin-only console, teleport and user-management operations.

Every operation returns a result dict. Failures carry ``success: False``, a
user-facing ``error``, a machine-readable ``code`` and the HTTP ``status``
the route should answer with.

Console commands are forwarded to the host verbatim. There is no allow-list:
anything the host's dispatcher accepts from the console is permitted for
admins.
"""

import math

from metricsbridge.core.user_store import UserStoreError, normalize_username, password_fits
from metricsbridge.services.host import HostUnavailableError

MIN_PASSWORD_LENGTH = 6
DEFAULT_WORLD = "minecraft:overworld"


def _ok(**payload):
    result = {"success": True, "status": 200}
    result.update(payload)
    return result


def _fail(message, code, status=400):
    return {"success": False, "error": message, "code": code, "status": status}


def _password_problem(password):
    """Return a failure result when ``password`` is unacceptable, else None."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return _fail(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", "password_too_short")
    if not password.strip():
        return _fail("Password cannot be blank", "invalid_input")
    if not password_fits(password):
        return _fail("Password is too long", "password_too_long")
    return None


def parse_coordinate(value):
    """Return ``value`` as a finite float, or None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


class AdminCommandGateway:
    """Validate and forward privileged operations."""

    def __init__(self, host_supplier, user_store, session_manager, console_sink, *,
                 log_action=None, log_exception=None):
        self.host_supplier = host_supplier
        self.user_store = user_store
        self.session_manager = session_manager
        self.console_sink = console_sink
        self._log_action = log_action or (lambda *_args, **_kwargs: None)
        self._log_exception = log_exception or (lambda _context, _exc: None)

    # ----------------------------
    # Console and teleport
    # ----------------------------
    def execute_console(self, actor, command):
        command = (command or "").strip() if isinstance(command, str) else ""
        if not command:
            self._log_action("console", actor=actor, rejection_message="No command provided.")
            return _fail("No command provided", "invalid_input")

        try:
            result = self.host_supplier().execute_command(command)
        except HostUnavailableError as exc:
            self._log_action("console", command=command, actor=actor, rejection_message=str(exc))
            return _fail(str(exc) or "Server not available", "host_unavailable", 503)
        except Exception as exc:
            self._log_exception("console_execute", exc)
            self._log_action("console", command=command, actor=actor, rejection_message="Command raised an error.")
            return _fail(f"Error executing command: {exc}", "command_error", 502)

        self.console_sink.append(f"> {command}")
        self.console_sink.extend(result.output)
        if not result.success:
            message = result.output or "Command failed or returned 0"
            self._log_action("console", command=command, actor=actor, rejection_message=message)
            return {
                "success": False,
                "status": 200,
                "error": message,
                "code": "command_failed",
                "output": result.output,
                "result": result.result_code,
            }
        self._log_action("console", command=command, actor=actor)
        return _ok(output=result.output or "Command executed successfully", result=result.result_code)

    def teleport(self, actor, player, x, y, z, world=None):
        player = (player or "").strip() if isinstance(player, str) else ""
        if not player:
            return _fail("Player name is required", "invalid_input")
        coords = [parse_coordinate(value) for value in (x, y, z)]
        if any(value is None for value in coords):
            return _fail("Coordinates x, y and z must be numbers", "invalid_coordinates")
        world = (world or "").strip() if isinstance(world, str) else ""
        world = world or DEFAULT_WORLD
        tx, ty, tz = coords
        description = f"{player} -> {tx}, {ty}, {tz} ({world})"

        host = self.host_supplier()
        try:
            resolved = host.find_world_by_identifier(world)
            if resolved is None:
                self._log_action("teleport", command=description, actor=actor, rejection_message="World not found.")
                return _fail(f"World '{world}' not found", "world_not_found", 404)
            if not host.is_player_online(player):
                self._log_action("teleport", command=description, actor=actor, rejection_message="Player not online.")
                return _fail(f"Player '{player}' not found or not online", "player_not_found", 404)
            moved = host.teleport_player(player, tx, ty, tz, resolved)
        except HostUnavailableError as exc:
            self._log_action("teleport", command=description, actor=actor, rejection_message=str(exc))
            return _fail(str(exc) or "Server not available", "host_unavailable", 503)
        except Exception as exc:
            self._log_exception("teleport", exc)
            return _fail(f"Teleport failed: {exc}", "command_error", 502)

        if not moved:
            self._log_action("teleport", command=description, actor=actor, rejection_message="Host refused teleport.")
            return _fail(f"Failed to teleport {player}", "teleport_failed", 200)
        self._log_action("teleport", command=description, actor=actor)
        return _ok(message=f"Teleported {player} to {tx}, {ty}, {tz} in {resolved}")

    # ----------------------------
    # User management
    # ----------------------------
    def list_users(self):
        users = self.user_store.list_users()
        return _ok(users={key: info.to_dict() for key, info in sorted(users.items())})

    def create_user(self, actor, username, password, is_admin=False):
        key = normalize_username(username) if isinstance(username, str) else ""
        if not key:
            return _fail("Username is required", "invalid_input")
        problem = _password_problem(password)
        if problem is not None:
            self._log_action("user-create", command=key, actor=actor, rejection_message=problem["error"])
            return problem
        if not isinstance(is_admin, bool):
            return _fail("isAdmin must be true or false", "invalid_input")
        if not self.user_store.create_user(key, password, is_admin):
            self._log_action("user-create", command=key, actor=actor, rejection_message="User already exists.")
            return _fail(f"User '{key}' already exists", "user_exists", 409)
        self._log_action("user-create", command=f"{key} admin={is_admin}", actor=actor)
        return _ok(message=f"User '{key}' created", user=self.user_store.get_user(key).to_dict())

    def delete_user(self, actor, username):
        key = normalize_username(username)
        if not key:
            return _fail("Username is required", "invalid_input")
        if key == normalize_username(actor):
            self._log_action("user-delete", command=key, actor=actor, rejection_message="Self delete.")
            return _fail("You cannot delete your own account", "self_delete", 409)
        try:
            removed = self.user_store.delete_user(key)
        except UserStoreError as exc:
            self._log_action("user-delete", command=key, actor=actor, rejection_message=exc.message)
            return _fail(exc.message, exc.code, 409)
        if not removed:
            return _fail(f"User '{key}' not found", "user_not_found", 404)
        dropped = self.session_manager.invalidate_user_sessions(key)
        self._log_action("user-delete", command=f"{key} sessions_dropped={dropped}", actor=actor)
        return _ok(message=f"User '{key}' deleted")

    def set_admin_status(self, actor, username, is_admin):
        key = normalize_username(username)
        if not key:
            return _fail("Username is required", "invalid_input")
        if not isinstance(is_admin, bool):
            return _fail("isAdmin must be true or false", "invalid_input")
        if key == normalize_username(actor):
            self._log_action("user-admin", command=key, actor=actor, rejection_message="Self admin change.")
            return _fail("You cannot change your own admin status", "self_admin_change", 409)
        try:
            updated = self.user_store.set_admin_status(key, is_admin)
        except UserStoreError as exc:
            self._log_action("user-admin", command=key, actor=actor, rejection_message=exc.message)
            return _fail(exc.message, exc.code, 409)
        if not updated:
            return _fail(f"User '{key}' not found", "user_not_found", 404)
        self._log_action("user-admin", command=f"{key} admin={is_admin}", actor=actor)
        return _ok(message=f"Admin status for '{key}' set to {is_admin}")

    def reset_password(self, actor, username, new_password):
        key = normalize_username(username)
        if not key:
            return _fail("Username is required", "invalid_input")
        problem = _password_problem(new_password)
        if problem is not None:
            return problem
        if not self.user_store.reset_password(key, new_password):
            return _fail(f"User '{key}' not found", "user_not_found", 404)
        self._log_action("user-password-reset", command=key, actor=actor)
        return _ok(message=f"Password for '{key}' reset")

    def change_password(self, username, old_password, new_password, confirm_password):
        """Self-service password change for the session's own user."""
        fields = (old_password, new_password, confirm_password)
        if not all(isinstance(value, str) and value for value in fields):
            return _fail("All password fields are required", "invalid_input")
        if new_password != confirm_password:
            return _fail("New passwords do not match", "password_mismatch")
        problem = _password_problem(new_password)
        if problem is not None:
            return problem
        if not self.user_store.update_password(username, old_password, new_password):
            self._log_action("change-password", actor=username, rejection_message="Current password incorrect.")
            return _fail("Current password is incorrect", "wrong_password")
        self._log_action("change-password", actor=username)
        return _ok(message="Password changed successfully")
