"""TCP server that answers protocol requests from a storage backend."""

from __future__ import annotations

import socket
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from cinegestion.models import (
    Pelicula,
    Sesion,
    serialize_pelicula_list,
    serialize_sesion_list,
)
from cinegestion.protocol import (
    ConnectionClosed,
    Message,
    OperationCode,
    receive_message,
    send_message,
)

_ACCEPT_POLL_SECONDS = 0.5

_NO_SESSION = "No hay sesión activa"
_NO_PERMISSION = "No tiene permisos para esta operación"
_SEARCH_FAILED = "Error en la búsqueda"


class Backend(Protocol):
    """Storage the server reads and writes.

    Methods raise an exception when an operation fails; single-record
    lookups return None when the record does not exist.
    """

    def login(self, email: str, password: str) -> int | None:
        """Return the user id for valid credentials, or None."""

    def user_type(self, user_id: int) -> int:
        """Return the user's type code."""

    def user_name(self, user_id: int) -> str:
        """Return the user's display name."""

    def user_is_admin(self, user_id: int) -> bool:
        """Tell whether the user is an administrator."""

    def pelicula_list(self) -> Sequence[Pelicula]:
        """Return every film."""

    def pelicula_get(self, pelicula_id: int) -> Pelicula | None:
        """Return one film."""

    def pelicula_create(self, pelicula: Pelicula) -> int:
        """Store a new film and return its id."""

    def pelicula_update(self, pelicula: Pelicula) -> None:
        """Overwrite an existing film."""

    def pelicula_delete(self, pelicula_id: int) -> None:
        """Remove a film."""

    def pelicula_search_by_titulo(self, titulo: str) -> Sequence[Pelicula]:
        """Return films whose title matches."""

    def pelicula_search_by_genero(self, genero: str) -> Sequence[Pelicula]:
        """Return films whose genre matches."""

    def sesion_list(self) -> Sequence[Sesion]:
        """Return every screening."""

    def sesion_get(self, sesion_id: int) -> Sesion | None:
        """Return one screening."""

    def sesion_create(self, sesion: Sesion) -> int:
        """Store a new screening and return its id."""

    def sesion_update(self, sesion: Sesion) -> None:
        """Overwrite an existing screening."""

    def sesion_delete(self, sesion_id: int) -> None:
        """Remove a screening."""

    def sesion_search_by_pelicula(self, pelicula_id: int) -> Sequence[Sesion]:
        """Return the screenings of a film."""

    def sesion_search_by_sala(self, sala_id: int) -> Sequence[Sesion]:
        """Return the screenings in a room."""

    def sesion_search_by_fecha(self, fecha: str) -> Sequence[Sesion]:
        """Return the screenings on a date."""

    def sala_list(self) -> Sequence[tuple[int, int]]:
        """Return (room id, seat count) pairs."""

    def sala_get(self, sala_id: int) -> int | None:
        """Return the seat count of a room."""

    def asiento_list_by_sala(self, sala_id: int) -> Sequence[tuple[int, int, bool]]:
        """Return (seat id, seat number, available) for a room."""

    def billete_create(self, sesion_id: int, asiento_id: int, precio: float) -> None:
        """Store a ticket."""

    def billete_esta_disponible(self, sesion_id: int, asiento_id: int) -> bool:
        """Tell whether a seat is still free for a screening."""

    def venta_create(
        self, usuario_id: int, billetes: Sequence[tuple[int, int]], descuento: float
    ) -> int:
        """Store a sale of (screening id, seat id) tickets and return its id."""

    def venta_list_by_user(self, usuario_id: int) -> Sequence[tuple[int, str, float]]:
        """Return (sale id, date, total) for a user's sales."""

    def venta_get(self, venta_id: int) -> tuple[int, str, float, float] | None:
        """Return (user id, date, discount, total) of a sale."""

    def venta_get_billetes(self, venta_id: int) -> Sequence[tuple[int, int, float]]:
        """Return (screening id, seat id, price) for a sale's tickets."""

    def close(self) -> None:
        """Release the storage."""


class _RequestFailed(Exception):
    """A handler's refusal, carried back to the peer as an error message."""


@contextmanager
def _failing_with(text: str) -> Iterator[None]:
    try:
        yield
    except _RequestFailed:
        raise
    except Exception as exc:
        raise _RequestFailed(text) from exc


def _ok() -> Message:
    return Message(OperationCode.OK)


_Handler = Callable[[Message, int], Message]


class Server:
    """Accepts connections and answers each client's requests in turn."""

    def __init__(self, backend: Backend, port: int = 8080, host: str = "0.0.0.0") -> None:
        self.backend = backend
        self.port = port
        self.host = host
        self._running = False
        self._listener: socket.socket | None = None
        self._backend_closed = False
        self._sessions: dict[int, int] = {}
        self._handlers: dict[int, _Handler] = {
            OperationCode.LOGIN: self._login,
            OperationCode.LOGOUT: self._logout,
            OperationCode.PELICULA_LIST: self._pelicula_list,
            OperationCode.PELICULA_GET: self._pelicula_get,
            OperationCode.PELICULA_CREATE: self._pelicula_create,
            OperationCode.PELICULA_UPDATE: self._pelicula_update,
            OperationCode.PELICULA_DELETE: self._pelicula_delete,
            OperationCode.PELICULA_SEARCH_TITULO: self._pelicula_search_titulo,
            OperationCode.PELICULA_SEARCH_GENERO: self._pelicula_search_genero,
            OperationCode.SESION_LIST: self._sesion_list,
            OperationCode.SESION_GET: self._sesion_get,
            OperationCode.SESION_CREATE: self._sesion_create,
            OperationCode.SESION_UPDATE: self._sesion_update,
            OperationCode.SESION_DELETE: self._sesion_delete,
            OperationCode.SESION_SEARCH_PELICULA: self._sesion_search_pelicula,
            OperationCode.SESION_SEARCH_SALA: self._sesion_search_sala,
            OperationCode.SESION_SEARCH_FECHA: self._sesion_search_fecha,
            OperationCode.SALA_LIST: self._sala_list,
            OperationCode.SALA_GET: self._sala_get,
            OperationCode.ASIENTO_LIST_BY_SALA: self._asiento_list_by_sala,
            OperationCode.BILLETE_CREATE: self._billete_create,
            OperationCode.BILLETE_DISPONIBILIDAD: self._billete_disponibilidad,
            OperationCode.VENTA_CREATE: self._venta_create,
            OperationCode.VENTA_LIST_BY_USER: self._venta_list_by_user,
            OperationCode.VENTA_GET: self._venta_get,
            OperationCode.VENTA_GET_BILLETES: self._venta_get_billetes,
        }

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Bind, listen and serve clients one after another until stopped."""
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.host, self.port))
            listener.listen(socket.SOMAXCONN)
        except OSError:
            listener.close()
            raise
        listener.settimeout(_ACCEPT_POLL_SECONDS)
        self._listener = listener
        self._running = True
        print(f"Servidor iniciado en puerto {self.port}", flush=True)

        while self._running:
            try:
                conn, (client_ip, client_port) = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._running:
                    break
                print(f"Error al aceptar conexión: {exc}", flush=True)
                continue
            conn.settimeout(None)
            print(f"Nueva conexión desde {client_ip}:{client_port}", flush=True)
            self.handle_client(conn, conn.fileno())

    def stop(self) -> None:
        """Stop accepting clients and release the listener and the backend."""
        self._running = False
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        if not self._backend_closed:
            self._backend_closed = True
            self.backend.close()
            print("Servidor detenido", flush=True)

    def handle_client(self, conn: socket.socket, client_id: int) -> None:
        """Answer requests on one connection until it closes or fails."""
        with conn:
            while self._running:
                try:
                    request = receive_message(conn)
                except (ConnectionClosed, ValueError):
                    print("Error al recibir mensaje o conexión cerrada", flush=True)
                    break
                if request.op_code == OperationCode.ERROR:
                    print("Error al recibir mensaje o conexión cerrada", flush=True)
                    break
                response = self.dispatch(request, client_id)
                try:
                    send_message(conn, response)
                except OSError:
                    print("Error al enviar respuesta", flush=True)
                    break
            self.remove_session(client_id)
        print(f"Conexión cerrada (socket {client_id})", flush=True)

    def dispatch(self, request: Message, client_id: int) -> Message:
        """Run the handler for the request's operation and return its response."""
        handler = self._handlers.get(request.op_code)
        if handler is None:
            return Message(OperationCode.ERROR, "Operación no soportada")
        try:
            return handler(request, client_id)
        except _RequestFailed as failure:
            return Message(OperationCode.ERROR, str(failure))
        except ValueError:
            return Message(OperationCode.ERROR, "Solicitud mal formada")

    # -- sessions ----------------------------------------------------------

    def is_session_active(self, client_id: int) -> bool:
        return client_id in self._sessions

    def user_id_for_session(self, client_id: int) -> int | None:
        return self._sessions.get(client_id)

    def create_session(self, client_id: int, user_id: int) -> None:
        self._sessions[client_id] = user_id

    def remove_session(self, client_id: int) -> None:
        self._sessions.pop(client_id, None)

    def _require_session(self, client_id: int) -> int:
        user_id = self._sessions.get(client_id)
        if user_id is None:
            raise _RequestFailed(_NO_SESSION)
        return user_id

    def _require_admin(self, client_id: int) -> int:
        user_id = self._require_session(client_id)
        with _failing_with(_NO_PERMISSION):
            is_admin = self.backend.user_is_admin(user_id)
        if not is_admin:
            raise _RequestFailed(_NO_PERMISSION)
        return user_id

    # -- authentication ----------------------------------------------------

    def _login(self, request: Message, client_id: int) -> Message:
        email = request.read_string()
        password = request.read_string()
        with _failing_with("Credenciales incorrectas"):
            user_id = self.backend.login(email, password)
        if user_id is None or user_id <= 0:
            raise _RequestFailed("Credenciales incorrectas")
        self.create_session(client_id, user_id)
        response = _ok()
        response.add_int(user_id)
        response.add_int(self.backend.user_type(user_id))
        response.add_string(self.backend.user_name(user_id))
        return response

    def _logout(self, request: Message, client_id: int) -> Message:
        self.remove_session(client_id)
        return _ok()

    # -- films -------------------------------------------------------------

    @staticmethod
    def _pelicula_response(peliculas: Sequence[Pelicula]) -> Message:
        response = _ok()
        serialize_pelicula_list(peliculas, response)
        return response

    def _pelicula_list(self, request: Message, client_id: int) -> Message:
        with _failing_with("Error al listar películas"):
            peliculas = self.backend.pelicula_list()
        return self._pelicula_response(peliculas)

    def _pelicula_get(self, request: Message, client_id: int) -> Message:
        pelicula_id = request.read_int()
        with _failing_with("Película no encontrada"):
            pelicula = self.backend.pelicula_get(pelicula_id)
        if pelicula is None:
            raise _RequestFailed("Película no encontrada")
        response = _ok()
        pelicula.serialize(response)
        return response

    def _pelicula_create(self, request: Message, client_id: int) -> Message:
        self._require_admin(client_id)
        pelicula = Pelicula.deserialize(request)
        with _failing_with("Error al crear película"):
            pelicula.id = self.backend.pelicula_create(pelicula)
        response = _ok()
        response.add_int(pelicula.id)
        return response

    def _pelicula_update(self, request: Message, client_id: int) -> Message:
        self._require_admin(client_id)
        pelicula = Pelicula.deserialize(request)
        with _failing_with("Error al actualizar película"):
            self.backend.pelicula_update(pelicula)
        return _ok()

    def _pelicula_delete(self, request: Message, client_id: int) -> Message:
        self._require_admin(client_id)
        pelicula_id = request.read_int()
        with _failing_with("Error al eliminar película"):
            self.backend.pelicula_delete(pelicula_id)
        return _ok()

    def _pelicula_search_titulo(self, request: Message, client_id: int) -> Message:
        titulo = request.read_string()
        with _failing_with(_SEARCH_FAILED):
            peliculas = self.backend.pelicula_search_by_titulo(titulo)
        return self._pelicula_response(peliculas)

    def _pelicula_search_genero(self, request: Message, client_id: int) -> Message:
        genero = request.read_string()
        with _failing_with(_SEARCH_FAILED):
            peliculas = self.backend.pelicula_search_by_genero(genero)
        return self._pelicula_response(peliculas)

    # -- screenings --------------------------------------------------------

    @staticmethod
    def _sesion_response(sesiones: Sequence[Sesion]) -> Message:
        response = _ok()
        serialize_sesion_list(sesiones, response)
        return response

    def _sesion_list(self, request: Message, client_id: int) -> Message:
        with _failing_with("Error al listar sesiones"):
            sesiones = self.backend.sesion_list()
        return self._sesion_response(sesiones)

    def _sesion_get(self, request: Message, client_id: int) -> Message:
        sesion_id = request.read_int()
        with _failing_with("Sesión no encontrada"):
            sesion = self.backend.sesion_get(sesion_id)
        if sesion is None:
            raise _RequestFailed("Sesión no encontrada")
        response = _ok()
        sesion.serialize(response)
        return response

    def _sesion_create(self, request: Message, client_id: int) -> Message:
        self._require_admin(client_id)
        sesion = Sesion.deserialize(request)
        with _failing_with("Error al crear sesión"):
            sesion.id = self.backend.sesion_create(sesion)
        response = _ok()
        response.add_int(sesion.id)
        return response

    def _sesion_update(self, request: Message, client_id: int) -> Message:
        self._require_admin(client_id)
        sesion = Sesion.deserialize(request)
        with _failing_with("Error al actualizar sesión"):
            self.backend.sesion_update(sesion)
        return _ok()

    def _sesion_delete(self, request: Message, client_id: int) -> Message:
        self._require_admin(client_id)
        sesion_id = request.read_int()
        with _failing_with("Error al eliminar sesión"):
            self.backend.sesion_delete(sesion_id)
        return _ok()

    def _sesion_search_pelicula(self, request: Message, client_id: int) -> Message:
        pelicula_id = request.read_int()
        with _failing_with(_SEARCH_FAILED):
            sesiones = self.backend.sesion_search_by_pelicula(pelicula_id)
        return self._sesion_response(sesiones)

    def _sesion_search_sala(self, request: Message, client_id: int) -> Message:
        sala_id = request.read_int()
        with _failing_with(_SEARCH_FAILED):
            sesiones = self.backend.sesion_search_by_sala(sala_id)
        return self._sesion_response(sesiones)

    def _sesion_search_fecha(self, request: Message, client_id: int) -> Message:
        fecha = request.read_string()
        with _failing_with(_SEARCH_FAILED):
            sesiones = self.backend.sesion_search_by_fecha(fecha)
        return self._sesion_response(sesiones)

    # -- rooms and seats ---------------------------------------------------

    def _sala_list(self, request: Message, client_id: int) -> Message:
        with _failing_with("Error al listar salas"):
            salas = list(self.backend.sala_list())
        response = _ok()
        response.add_int(len(salas))
        for sala_id, num_asientos in salas:
            response.add_int(sala_id)
            response.add_int(num_asientos)
        return response

    def _sala_get(self, request: Message, client_id: int) -> Message:
        sala_id = request.read_int()
        with _failing_with("Sala no encontrada"):
            num_asientos = self.backend.sala_get(sala_id)
        if num_asientos is None:
            raise _RequestFailed("Sala no encontrada")
        response = _ok()
        response.add_int(sala_id)
        response.add_int(num_asientos)
        return response

    def _asiento_list_by_sala(self, request: Message, client_id: int) -> Message:
        sala_id = request.read_int()
        with _failing_with("Error al listar asientos"):
            asientos = list(self.backend.asiento_list_by_sala(sala_id))
        response = _ok()
        response.add_int(len(asientos))
        for asiento_id, numero, disponible in asientos:
            response.add_int(asiento_id)
            response.add_int(numero)
            response.add_bool(disponible)
        return response

    # -- tickets and sales -------------------------------------------------

    def _billete_create(self, request: Message, client_id: int) -> Message:
        self._require_session(client_id)
        sesion_id = request.read_int()
        asiento_id = request.read_int()
        precio = request.read_float()
        with _failing_with("Error al crear billete"):
            self.backend.billete_create(sesion_id, asiento_id, precio)
        return _ok()

    def _billete_disponibilidad(self, request: Message, client_id: int) -> Message:
        sesion_id = request.read_int()
        asiento_id = request.read_int()
        with _failing_with("Error al comprobar disponibilidad"):
            disponible = self.backend.billete_esta_disponible(sesion_id, asiento_id)
        response = _ok()
        response.add_bool(disponible)
        return response

    def _venta_create(self, request: Message, client_id: int) -> Message:
        user_id = self._require_session(client_id)
        count = request.read_int()
        billetes = [(request.read_int(), request.read_int()) for _ in range(count)]
        descuento = request.read_float()
        with _failing_with("Error al crear la venta"):
            venta_id = self.backend.venta_create(user_id, billetes, descuento)
        if venta_id is None or venta_id <= 0:
            raise _RequestFailed("Error al crear la venta")
        response = _ok()
        response.add_int(venta_id)
        return response

    def _venta_list_by_user(self, request: Message, client_id: int) -> Message:
        user_id = self._require_session(client_id)
        with _failing_with("Error al obtener las ventas"):
            ventas = list(self.backend.venta_list_by_user(user_id))
        response = _ok()
        response.add_int(len(ventas))
        for venta_id, fecha, total in ventas:
            response.add_int(venta_id)
            response.add_string(fecha)
            response.add_float(total)
        return response

    def _venta_get(self, request: Message, client_id: int) -> Message:
        self._require_session(client_id)
        venta_id = request.read_int()
        with _failing_with("Venta no encontrada"):
            venta = self.backend.venta_get(venta_id)
        if venta is None:
            raise _RequestFailed("Venta no encontrada")
        usuario_id, fecha, descuento, total = venta
        response = _ok()
        response.add_int(venta_id)
        response.add_int(usuario_id)
        response.add_string(fecha)
        response.add_float(descuento)
        response.add_float(total)
        return response

    def _venta_get_billetes(self, request: Message, client_id: int) -> Message:
        self._require_session(client_id)
        venta_id = request.read_int()
        with _failing_with("Error al obtener los billetes"):
            billetes = list(self.backend.venta_get_billetes(venta_id))
        response = _ok()
        response.add_int(len(billetes))
        for sesion_id, asiento_id, precio in billetes:
            response.add_int(sesion_id)
            response.add_int(asiento_id)
            response.add_float(precio)
        return response