"""Client for the cinema server: one connection, one logged-in user."""

from __future__ import annotations

import socket
from collections.abc import Iterable
from dataclasses import dataclass, field

from cinegestion.models import (
    Pelicula,
    Sesion,
    deserialize_pelicula_list,
    deserialize_sesion_list,
)
from cinegestion.protocol import (
    ConnectionClosed,
    Message,
    OperationCode,
    receive_message,
    send_message,
)

ADMIN_USER_TYPE = 1

_NOT_CONNECTED = "No conectado al servidor"
_NO_PERMISSION = "No tiene permisos para esta operación"


class ClientError(Exception):
    """Raised when a request cannot be sent or the server refuses it."""


@dataclass
class Sala:
    """A screening room."""

    id: int
    num_asientos: int


@dataclass
class Asiento:
    """A seat in a room."""

    id: int
    numero: int
    disponible: bool


@dataclass
class Venta:
    """Summary of a sale."""

    id: int
    fecha: str
    total: float


@dataclass
class VentaDetalle:
    """A sale with its tickets as (screening id, seat id) pairs."""

    id: int
    usuario_id: int
    fecha: str
    descuento: float
    total: float
    billetes: list[tuple[int, int]] = field(default_factory=list)


class Client:
    """Talks to the cinema server over TCP."""

    def __init__(self, server_ip: str = "127.0.0.1", server_port: int = 8080) -> None:
        self.server_ip = server_ip
        self.server_port = server_port
        self._sock: socket.socket | None = None
        self.user_id: int | None = None
        self.user_type: int | None = None
        self.user_name = ""

    # -- connection --------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """Open the connection; does nothing if already connected."""
        if self._sock is not None:
            return
        try:
            self._sock = socket.create_connection((self.server_ip, self.server_port))
        except OSError as exc:
            raise ClientError("Error al conectar al servidor") from exc

    def disconnect(self) -> None:
        """Close the connection and forget the logged-in user."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        if self.logged_in:
            self.logout()

    def __enter__(self) -> Client:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()

    # -- user session ------------------------------------------------------

    @property
    def logged_in(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.user_type == ADMIN_USER_TYPE

    def login(self, email: str, password: str) -> None:
        """Authenticate; raises ClientError with the server's reason on failure."""
        request = Message(OperationCode.LOGIN)
        request.add_string(email)
        request.add_string(password)
        response = self._request(request)
        self.user_id = response.read_int()
        self.user_type = response.read_int()
        self.user_name = response.read_string()

    def logout(self) -> None:
        """Tell the server, if still connected, and clear the local user."""
        if self.connected and self.logged_in:
            try:
                self.send_request(Message(OperationCode.LOGOUT))
            except ClientError:
                pass
        self.user_id = None
        self.user_type = None
        self.user_name = ""

    # -- transport ---------------------------------------------------------

    def send_request(self, request: Message) -> Message:
        """Send a request and return the server's response, whatever its code."""
        if self._sock is None:
            raise ClientError(_NOT_CONNECTED)
        try:
            send_message(self._sock, request)
        except OSError as exc:
            raise ClientError("Error al enviar la solicitud") from exc
        try:
            return receive_message(self._sock)
        except (ConnectionClosed, ValueError) as exc:
            raise ClientError("Connection closed or error") from exc

    def _request(self, request: Message) -> Message:
        response = self.send_request(request)
        if response.op_code != OperationCode.OK:
            raise ClientError(response.data)
        return response

    def _require_admin(self) -> None:
        if self._sock is None:
            raise ClientError(_NOT_CONNECTED)
        if not self.logged_in or not self.is_admin:
            raise ClientError(_NO_PERMISSION)

    @staticmethod
    def _with_int(code: OperationCode, value: int) -> Message:
        request = Message(code)
        request.add_int(value)
        return request

    @staticmethod
    def _with_string(code: OperationCode, value: str) -> Message:
        request = Message(code)
        request.add_string(value)
        return request

    # -- films -------------------------------------------------------------

    def get_peliculas(self) -> list[Pelicula]:
        response = self._request(Message(OperationCode.PELICULA_LIST))
        return deserialize_pelicula_list(response)

    def get_pelicula(self, pelicula_id: int) -> Pelicula:
        response = self._request(self._with_int(OperationCode.PELICULA_GET, pelicula_id))
        return Pelicula.deserialize(response)

    def create_pelicula(self, pelicula: Pelicula) -> int:
        """Store a film; its id is set from the server's answer and returned."""
        self._require_admin()
        request = Message(OperationCode.PELICULA_CREATE)
        pelicula.serialize(request)
        pelicula.id = self._request(request).read_int()
        return pelicula.id

    def update_pelicula(self, pelicula: Pelicula) -> None:
        self._require_admin()
        request = Message(OperationCode.PELICULA_UPDATE)
        pelicula.serialize(request)
        self._request(request)

    def delete_pelicula(self, pelicula_id: int) -> None:
        self._require_admin()
        self._request(self._with_int(OperationCode.PELICULA_DELETE, pelicula_id))

    def search_peliculas_by_titulo(self, titulo: str) -> list[Pelicula]:
        request = self._with_string(OperationCode.PELICULA_SEARCH_TITULO, titulo)
        return deserialize_pelicula_list(self._request(request))

    def search_peliculas_by_genero(self, genero: str) -> list[Pelicula]:
        request = self._with_string(OperationCode.PELICULA_SEARCH_GENERO, genero)
        return deserialize_pelicula_list(self._request(request))

    # -- screenings --------------------------------------------------------

    def get_sesiones(self) -> list[Sesion]:
        return deserialize_sesion_list(self._request(Message(OperationCode.SESION_LIST)))

    def get_sesion(self, sesion_id: int) -> Sesion:
        response = self._request(self._with_int(OperationCode.SESION_GET, sesion_id))
        return Sesion.deserialize(response)

    def create_sesion(self, sesion: Sesion) -> int:
        """Store a screening; its id is set from the server's answer and returned."""
        self._require_admin()
        request = Message(OperationCode.SESION_CREATE)
        sesion.serialize(request)
        sesion.id = self._request(request).read_int()
        return sesion.id

    def update_sesion(self, sesion: Sesion) -> None:
        self._require_admin()
        request = Message(OperationCode.SESION_UPDATE)
        sesion.serialize(request)
        self._request(request)

    def delete_sesion(self, sesion_id: int) -> None:
        self._require_admin()
        self._request(self._with_int(OperationCode.SESION_DELETE, sesion_id))

    def get_sesiones_by_pelicula(self, pelicula_id: int) -> list[Sesion]:
        request = self._with_int(OperationCode.SESION_SEARCH_PELICULA, pelicula_id)
        return deserialize_sesion_list(self._request(request))

    def get_sesiones_by_sala(self, sala_id: int) -> list[Sesion]:
        request = self._with_int(OperationCode.SESION_SEARCH_SALA, sala_id)
        return deserialize_sesion_list(self._request(request))

    def get_sesiones_by_fecha(self, fecha: str) -> list[Sesion]:
        request = self._with_string(OperationCode.SESION_SEARCH_FECHA, fecha)
        return deserialize_sesion_list(self._request(request))

    # -- rooms and seats ---------------------------------------------------

    def get_salas(self) -> list[Sala]:
        response = self._request(Message(OperationCode.SALA_LIST))
        count = response.read_int()
        return [Sala(response.read_int(), response.read_int()) for _ in range(count)]

    def get_sala(self, sala_id: int) -> Sala:
        response = self._request(self._with_int(OperationCode.SALA_GET, sala_id))
        return Sala(response.read_int(), response.read_int())

    def get_asientos_by_sala(self, sala_id: int) -> list[Asiento]:
        response = self._request(self._with_int(OperationCode.ASIENTO_LIST_BY_SALA, sala_id))
        count = response.read_int()
        return [
            Asiento(response.read_int(), response.read_int(), response.read_bool())
            for _ in range(count)
        ]

    # -- tickets and sales -------------------------------------------------

    def create_billete(self, sesion_id: int, asiento_id: int, precio: float) -> None:
        request = Message(OperationCode.BILLETE_CREATE)
        request.add_int(sesion_id)
        request.add_int(asiento_id)
        request.add_float(precio)
        self._request(request)

    def check_asiento_disponible(self, sesion_id: int, asiento_id: int) -> bool:
        request = Message(OperationCode.BILLETE_DISPONIBILIDAD)
        request.add_int(sesion_id)
        request.add_int(asiento_id)
        return self._request(request).read_bool()

    def create_venta(
        self, billetes: Iterable[tuple[int, int]], descuento: float = 0.0
    ) -> int:
        """Buy (screening id, seat id) tickets; returns the new sale's id."""
        billetes = list(billetes)
        request = Message(OperationCode.VENTA_CREATE)
        request.add_int(len(billetes))
        for sesion_id, asiento_id in billetes:
            request.add_int(sesion_id)
            request.add_int(asiento_id)
        request.add_float(descuento)
        return self._request(request).read_int()

    def get_ventas_by_user(self) -> list[Venta]:
        response = self._request(Message(OperationCode.VENTA_LIST_BY_USER))
        count = response.read_int()
        return [
            Venta(response.read_int(), response.read_string(), response.read_float())
            for _ in range(count)
        ]

    def get_venta_detalle(self, venta_id: int) -> VentaDetalle:
        response = self._request(self._with_int(OperationCode.VENTA_GET, venta_id))
        detalle = VentaDetalle(
            id=response.read_int(),
            usuario_id=response.read_int(),
            fecha=response.read_string(),
            descuento=response.read_float(),
            total=response.read_float(),
        )
        billetes = self._request(self._with_int(OperationCode.VENTA_GET_BILLETES, venta_id))
        count = billetes.read_int()
        for _ in range(count):
            sesion_id = billetes.read_int()
            asiento_id = billetes.read_int()
            billetes.read_float()
            detalle.billetes.append((sesion_id, asiento_id))
        return detalle