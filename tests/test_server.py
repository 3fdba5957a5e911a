import socket
import threading
import time

import pytest

from cinegestion.models import (
    Pelicula,
    Sesion,
    deserialize_pelicula_list,
    deserialize_sesion_list,
)
from cinegestion.protocol import Message, OperationCode, receive_message, send_message
from cinegestion.server import Server

ADMIN_EMAIL = "admin@example.com"
CLIENT_EMAIL = "juan@example.com"
PASSWORD = "password"


class FakeBackend:
    def __init__(self):
        self.users = {
            ADMIN_EMAIL: (1, 1, "Administrador"),
            CLIENT_EMAIL: (2, 0, "Juan Pérez"),
        }
        self.peliculas = {
            1: Pelicula(1, "El Padrino", 175, "Drama, Crimen"),
            3: Pelicula(3, "Matrix", 136, "Ciencia Ficción, Acción"),
        }
        self.sesiones = {
            1: Sesion(1, 1, 1, "2024-05-01 16:00:00", "2024-05-01 19:10:00"),
            2: Sesion(2, 3, 3, "2024-05-02 20:00:00", "2024-05-02 22:31:00"),
        }
        self.ventas = []
        self.billetes = []
        self.occupied = {(1, 1), (1, 2)}
        self.fail_lists = False
        self.closed = 0

    def login(self, email, password):
        if password != PASSWORD or email not in self.users:
            return None
        return self.users[email][0]

    def _user(self, user_id):
        return next(u for u in self.users.values() if u[0] == user_id)

    def user_type(self, user_id):
        return self._user(user_id)[1]

    def user_name(self, user_id):
        return self._user(user_id)[2]

    def user_is_admin(self, user_id):
        return self._user(user_id)[1] == 1

    def pelicula_list(self):
        if self.fail_lists:
            raise RuntimeError("db down")
        return list(self.peliculas.values())

    def pelicula_get(self, pelicula_id):
        return self.peliculas.get(pelicula_id)

    def pelicula_create(self, pelicula):
        new_id = max(self.peliculas) + 1
        self.peliculas[new_id] = Pelicula(new_id, pelicula.titulo, pelicula.duracion, pelicula.genero)
        return new_id

    def pelicula_update(self, pelicula):
        if pelicula.id not in self.peliculas:
            raise KeyError(pelicula.id)
        self.peliculas[pelicula.id] = pelicula

    def pelicula_delete(self, pelicula_id):
        del self.peliculas[pelicula_id]

    def pelicula_search_by_titulo(self, titulo):
        return [p for p in self.peliculas.values() if titulo in p.titulo]

    def pelicula_search_by_genero(self, genero):
        return [p for p in self.peliculas.values() if genero in p.genero]

    def sesion_list(self):
        return list(self.sesiones.values())

    def sesion_get(self, sesion_id):
        return self.sesiones.get(sesion_id)

    def sesion_create(self, sesion):
        new_id = max(self.sesiones) + 1
        self.sesiones[new_id] = sesion
        return new_id

    def sesion_update(self, sesion):
        self.sesiones[sesion.id] = sesion

    def sesion_delete(self, sesion_id):
        del self.sesiones[sesion_id]

    def sesion_search_by_pelicula(self, pelicula_id):
        return [s for s in self.sesiones.values() if s.pelicula_id == pelicula_id]

    def sesion_search_by_sala(self, sala_id):
        return [s for s in self.sesiones.values() if s.sala_id == sala_id]

    def sesion_search_by_fecha(self, fecha):
        return [s for s in self.sesiones.values() if s.hora_inicio.startswith(fecha)]

    def sala_list(self):
        return [(1, 50), (2, 80), (3, 120)]

    def sala_get(self, sala_id):
        return dict(self.sala_list()).get(sala_id)

    def asiento_list_by_sala(self, sala_id):
        return [(1, 1, False), (2, 2, True)]

    def billete_create(self, sesion_id, asiento_id, precio):
        self.billetes.append((sesion_id, asiento_id, precio))

    def billete_esta_disponible(self, sesion_id, asiento_id):
        return (sesion_id, asiento_id) not in self.occupied

    def venta_create(self, usuario_id, billetes, descuento):
        self.ventas.append((usuario_id, list(billetes), descuento))
        return len(self.ventas)

    def venta_list_by_user(self, usuario_id):
        return [(i + 1, "2024-05-01 12:00:00", 17.0)
                for i, v in enumerate(self.ventas) if v[0] == usuario_id]

    def venta_get(self, venta_id):
        if not 0 < venta_id <= len(self.ventas):
            return None
        usuario_id, _, descuento = self.ventas[venta_id - 1]
        return (usuario_id, "2024-05-01 12:00:00", descuento, 17.0)

    def venta_get_billetes(self, venta_id):
        _, billetes, _ = self.ventas[venta_id - 1]
        return [(s, a, 8.5) for s, a in billetes]

    def close(self):
        self.closed += 1


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def server(backend):
    return Server(backend, 8080, "127.0.0.1")


def login(server, client_id, email):
    request = Message(OperationCode.LOGIN)
    request.add_string(email)
    request.add_string(PASSWORD)
    return server.dispatch(request, client_id)


def test_login_success_returns_user_data_and_opens_session(server):
    response = login(server, 7, CLIENT_EMAIL)
    assert response.op_code == OperationCode.OK
    assert response.read_int() == 2
    assert response.read_int() == 0
    assert response.read_string() == "Juan Pérez"
    assert server.is_session_active(7)
    assert server.user_id_for_session(7) == 2


def test_login_wrong_credentials(server):
    request = Message(OperationCode.LOGIN)
    request.add_string(CLIENT_EMAIL)
    request.add_string("secret")
    response = server.dispatch(request, 7)
    assert response.op_code == OperationCode.ERROR
    assert response.data == "Credenciales incorrectas"
    assert not server.is_session_active(7)


def test_logout_removes_session(server):
    login(server, 7, CLIENT_EMAIL)
    response = server.dispatch(Message(OperationCode.LOGOUT), 7)
    assert response.op_code == OperationCode.OK
    assert not server.is_session_active(7)
    assert server.user_id_for_session(7) is None


def test_session_bookkeeping(server):
    server.create_session(3, 42)
    assert server.user_id_for_session(3) == 42
    server.remove_session(3)
    server.remove_session(3)
    assert not server.is_session_active(3)


def test_unknown_operation(server):
    response = server.dispatch(Message(999), 1)
    assert response.op_code == OperationCode.ERROR
    assert response.data == "Operación no soportada"


def test_pelicula_list_round_trip(server, backend):
    response = server.dispatch(Message(OperationCode.PELICULA_LIST), 1)
    assert response.op_code == OperationCode.OK
    assert deserialize_pelicula_list(response) == list(backend.peliculas.values())


def test_pelicula_list_backend_failure(server, backend):
    backend.fail_lists = True
    response = server.dispatch(Message(OperationCode.PELICULA_LIST), 1)
    assert response.op_code == OperationCode.ERROR
    assert response.data == "Error al listar películas"


def test_pelicula_get_found_and_missing(server, backend):
    request = Message(OperationCode.PELICULA_GET)
    request.add_int(3)
    response = server.dispatch(request, 1)
    assert Pelicula.deserialize(response) == backend.peliculas[3]

    request = Message(OperationCode.PELICULA_GET)
    request.add_int(99)
    response = server.dispatch(request, 1)
    assert response.data == "Película no encontrada"


def test_pelicula_get_malformed_request(server):
    response = server.dispatch(Message(OperationCode.PELICULA_GET, "abc|"), 1)
    assert response.op_code == OperationCode.ERROR


def _create_request(titulo="Titanic"):
    request = Message(OperationCode.PELICULA_CREATE)
    Pelicula(0, titulo, 195, "Romance, Drama").serialize(request)
    return request


def test_pelicula_create_requires_session(server):
    response = server.dispatch(_create_request(), 5)
    assert response.data == "No hay sesión activa"


def test_pelicula_create_requires_admin(server, backend):
    login(server, 5, CLIENT_EMAIL)
    response = server.dispatch(_create_request(), 5)
    assert response.data == "No tiene permisos para esta operación"
    assert len(backend.peliculas) == 2


def test_pelicula_create_by_admin(server, backend):
    login(server, 5, ADMIN_EMAIL)
    response = server.dispatch(_create_request(), 5)
    assert response.op_code == OperationCode.OK
    new_id = response.read_int()
    assert backend.peliculas[new_id].titulo == "Titanic"


def test_pelicula_update_and_delete_by_admin(server, backend):
    login(server, 5, ADMIN_EMAIL)
    request = Message(OperationCode.PELICULA_UPDATE)
    Pelicula(3, "Matrix Reloaded", 138, "Acción").serialize(request)
    assert server.dispatch(request, 5).op_code == OperationCode.OK
    assert backend.peliculas[3].titulo == "Matrix Reloaded"

    request = Message(OperationCode.PELICULA_DELETE)
    request.add_int(3)
    assert server.dispatch(request, 5).op_code == OperationCode.OK
    assert 3 not in backend.peliculas

    request = Message(OperationCode.PELICULA_DELETE)
    request.add_int(3)
    assert server.dispatch(request, 5).data == "Error al eliminar película"


def test_pelicula_search_by_titulo(server):
    request = Message(OperationCode.PELICULA_SEARCH_TITULO)
    request.add_string("Padrino")
    response = server.dispatch(request, 1)
    assert [p.titulo for p in deserialize_pelicula_list(response)] == ["El Padrino"]


def test_sesion_search_by_fecha(server, backend):
    request = Message(OperationCode.SESION_SEARCH_FECHA)
    request.add_string("2024-05-02")
    response = server.dispatch(request, 1)
    assert deserialize_sesion_list(response) == [backend.sesiones[2]]


def test_sesion_create_by_admin(server, backend):
    login(server, 5, ADMIN_EMAIL)
    request = Message(OperationCode.SESION_CREATE)
    nueva = Sesion(0, 1, 2, "2024-05-03 18:00:00", "2024-05-03 21:10:00")
    nueva.serialize(request)
    response = server.dispatch(request, 5)
    new_id = response.read_int()
    assert backend.sesiones[new_id].hora_inicio == nueva.hora_inicio


def test_sala_and_asientos(server):
    response = server.dispatch(Message(OperationCode.SALA_LIST), 1)
    count = response.read_int()
    salas = [(response.read_int(), response.read_int()) for _ in range(count)]
    assert salas == [(1, 50), (2, 80), (3, 120)]

    request = Message(OperationCode.ASIENTO_LIST_BY_SALA)
    request.add_int(1)
    response = server.dispatch(request, 1)
    count = response.read_int()
    asientos = [(response.read_int(), response.read_int(), response.read_bool())
                for _ in range(count)]
    assert asientos == [(1, 1, False), (2, 2, True)]


def test_billete_disponibilidad(server):
    request = Message(OperationCode.BILLETE_DISPONIBILIDAD)
    request.add_int(1)
    request.add_int(1)
    assert server.dispatch(request, 1).read_bool() is False

    request = Message(OperationCode.BILLETE_DISPONIBILIDAD)
    request.add_int(1)
    request.add_int(3)
    assert server.dispatch(request, 1).read_bool() is True


def test_venta_create_and_list(server, backend):
    login(server, 9, CLIENT_EMAIL)
    request = Message(OperationCode.VENTA_CREATE)
    request.add_int(2)
    for sesion_id, asiento_id in [(2, 51), (2, 52)]:
        request.add_int(sesion_id)
        request.add_int(asiento_id)
    request.add_float(10)
    response = server.dispatch(request, 9)
    assert response.op_code == OperationCode.OK
    venta_id = response.read_int()
    assert backend.ventas[venta_id - 1] == (2, [(2, 51), (2, 52)], 10.0)

    response = server.dispatch(Message(OperationCode.VENTA_LIST_BY_USER), 9)
    assert response.read_int() == 1
    assert response.read_int() == venta_id


def test_venta_requires_session(server):
    response = server.dispatch(Message(OperationCode.VENTA_LIST_BY_USER), 9)
    assert response.data == "No hay sesión activa"


def test_venta_get_and_billetes(server):
    login(server, 9, CLIENT_EMAIL)
    request = Message(OperationCode.VENTA_CREATE)
    request.add_int(1)
    request.add_int(1)
    request.add_int(5)
    request.add_float(0)
    venta_id = server.dispatch(request, 9).read_int()

    request = Message(OperationCode.VENTA_GET)
    request.add_int(venta_id)
    response = server.dispatch(request, 9)
    assert response.read_int() == venta_id
    assert response.read_int() == 2

    request = Message(OperationCode.VENTA_GET_BILLETES)
    request.add_int(venta_id)
    response = server.dispatch(request, 9)
    assert response.read_int() == 1
    assert (response.read_int(), response.read_int()) == (1, 5)


def _free_port():
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def _connect(port):
    deadline = time.monotonic() + 5
    while True:
        try:
            return socket.create_connection(("127.0.0.1", port), timeout=5)
        except OSError:
            if time.monotonic() > deadline:
                raise
            time.sleep(0.05)


def test_serves_requests_over_tcp_and_stops_once(backend):
    port = _free_port()
    server = Server(backend, port, "127.0.0.1")
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    conn = _connect(port)
    try:
        request = Message(OperationCode.LOGIN)
        request.add_string(ADMIN_EMAIL)
        request.add_string(PASSWORD)
        send_message(conn, request)
        response = receive_message(conn)
        assert response.op_code == OperationCode.OK
        assert response.read_int() == 1

        send_message(conn, Message(OperationCode.SESION_LIST))
        response = receive_message(conn)
        assert deserialize_sesion_list(response) == list(backend.sesiones.values())

        send_message(conn, Message(999))
        assert receive_message(conn).data == "Operación no soportada"
    finally:
        conn.close()

    deadline = time.monotonic() + 5
    while server._sessions and time.monotonic() < deadline:
        time.sleep(0.05)
    assert server._sessions == {}

    server.stop()
    server.stop()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert backend.closed == 1