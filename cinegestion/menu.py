"""Interactive text menus for the cinema client."""

from __future__ import annotations

import argparse
import re
import sys
from collections import Counter
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum, auto

from cinegestion.client import Client, ClientError
from cinegestion.models import Pelicula, Sesion

_WIDTH = 60
_MAX_ID = 999999
_INT_PREFIX = re.compile(r"\s*[+-]?\d+")
_AFFIRMATIVE = frozenset({"s", "si", "sí", "y", "yes"})
_CLEAR_SCREEN = "\033[2J\033[H"


class MenuType(Enum):
    """The screens the menu can show."""

    PRINCIPAL = auto()
    AUTENTICACION = auto()
    ADMIN = auto()
    CLIENTE = auto()
    PELICULAS = auto()
    SALAS = auto()
    SESIONES = auto()
    VENTAS = auto()
    REPORTES = auto()


def _border() -> str:
    return "+" + "-" * (_WIDTH - 2) + "+"


def format_header(title: str) -> str:
    """Return a boxed, centred title as three lines."""
    room = _WIDTH - len(title) - 2
    padding = max(0, room // 2)
    odd = " " if room % 2 else ""
    title_line = "|" + " " * padding + f" {title} " + " " * padding + odd + "|"
    return "\n".join([_border(), title_line, _border()])


def is_affirmative(answer: str) -> bool:
    """Tell whether an answer means yes."""
    return answer.lower() in _AFFIRMATIVE


class Menu:
    """Drives the client through text screens read from and written to callables."""

    def __init__(
        self,
        client: Client,
        read_line: Callable[[str], str] = input,
        write: Callable[[str], object] = print,
    ) -> None:
        self.client = client
        self._read = read_line
        self._write = write
        self.active = True
        self._screens: dict[MenuType, Callable[[], MenuType | None]] = {
            MenuType.PRINCIPAL: self._main_menu,
            MenuType.AUTENTICACION: self._auth_menu,
            MenuType.ADMIN: self._admin_menu,
            MenuType.CLIENTE: self._client_menu,
            MenuType.PELICULAS: self._peliculas_menu,
            MenuType.SALAS: self._salas_menu,
            MenuType.SESIONES: self._sesiones_menu,
            MenuType.VENTAS: self._ventas_menu,
            MenuType.REPORTES: self._reportes_menu,
        }

    # -- entry points ------------------------------------------------------

    def run(self) -> None:
        """Show the main menu until the user leaves or input ends."""
        self.active = True
        try:
            while self.active:
                self.show(MenuType.PRINCIPAL)
        except EOFError:
            self.active = False

    def show(self, menu_type: MenuType) -> None:
        """Show a screen, then whichever screens it leads to, until one ends."""
        current: MenuType | None = menu_type
        while current is not None and self.active:
            screen = self._screens.get(current)
            if screen is None:
                self._error("Tipo de menú desconocido")
                return
            current = screen()

    # -- output and input helpers ------------------------------------------

    def _clear(self) -> None:
        self._write(_CLEAR_SCREEN)

    def _header(self, title: str) -> None:
        self._write("")
        self._write(format_header(title))
        self._write("")

    def _footer(self) -> None:
        self._write("")
        self._write(_border())
        if self.client.logged_in:
            kind = "Administrador" if self.client.is_admin else "Cliente"
            self._write(f"| Usuario: {self.client.user_name:<47} |")
            self._write(f"| Tipo: {kind:<50} |")
        self._write(_border())

    def _error(self, text: str) -> None:
        self._write("")
        self._write(f"[ERROR] {text}")

    def _success(self, text: str) -> None:
        self._write("")
        self._write(f"[OK] {text}")

    def _pause(self) -> None:
        self._read("\nPresione cualquier tecla para continuar...")

    def _read_text(self, prompt: str) -> str:
        while True:
            text = self._read(f"{prompt}: ")
            if text:
                return text

    def _read_int(self, prompt: str, low: int, high: int) -> int:
        while True:
            text = self._read(f"{prompt} ({low}-{high}): ")
            match = _INT_PREFIX.match(text)
            if match is not None and low <= int(match.group(0)) <= high:
                return int(match.group(0))
            self._error("Valor inválido. Intente de nuevo.")

    def _read_id(self, prompt: str) -> int:
        return self._read_int(prompt, 1, _MAX_ID)

    def _confirm(self, prompt: str) -> bool:
        return is_affirmative(self._read(f"{prompt} (S/N): "))

    @contextmanager
    def _reporting(self) -> Iterator[None]:
        """Show a failed request's reason and wait, instead of raising."""
        try:
            yield
        except ClientError as exc:
            self._error(str(exc))
            self._pause()

    def _options(self, *lines: str) -> None:
        for number, line in enumerate(lines, start=1):
            self._write(f"{number}. {line}")

    # -- main screens ------------------------------------------------------

    def _main_menu(self) -> MenuType | None:
        self._clear()
        self._header("SISTEMA DE GESTIÓN DE CINE")
        self._options("Iniciar sesión", "Salir")
        if self._read_int("Seleccione una opción", 1, 2) == 1:
            return MenuType.AUTENTICACION
        self.active = False
        return None

    def _auth_menu(self) -> MenuType | None:
        self._clear()
        self._header("INICIAR SESIÓN")
        correo = self._read_text("Correo electrónico")
        contrasena = self._read_text("Contraseña")
        try:
            self.client.login(correo, contrasena)
        except ClientError as exc:
            self._error(str(exc))
            self._pause()
            return MenuType.PRINCIPAL
        self._success("Inicio de sesión exitoso")
        return MenuType.ADMIN if self.client.is_admin else MenuType.CLIENTE

    def _logout(self) -> MenuType:
        self.client.logout()
        self._success("Sesión cerrada correctamente")
        self._pause()
        return MenuType.PRINCIPAL

    def _session_ended(self) -> MenuType | None:
        if not self.client.logged_in:
            self._error("La sesión ha expirado")
            self._pause()
            return MenuType.PRINCIPAL
        return None

    def _admin_menu(self) -> MenuType | None:
        subscreens = {
            1: MenuType.PELICULAS,
            2: MenuType.SALAS,
            3: MenuType.SESIONES,
            5: MenuType.REPORTES,
        }
        while self.client.logged_in and self.client.is_admin:
            self._clear()
            self._header("MENÚ DE ADMINISTRADOR")
            self._options(
                "Gestionar Películas",
                "Gestionar Salas",
                "Gestionar Sesiones",
                "Gestionar Usuarios",
                "Ver Reportes",
                "Cerrar sesión",
            )
            self._footer()
            option = self._read_int("Seleccione una opción", 1, 6)
            if option == 6:
                return self._logout()
            if option in subscreens:
                self.show(subscreens[option])
        return self._session_ended()

    def _client_menu(self) -> MenuType | None:
        actions = {
            1: self._client_cartelera,
            2: self._client_buy,
            3: self._client_purchases,
        }
        while self.client.logged_in:
            self._clear()
            self._header("MENÚ DE CLIENTE")
            self._options("Ver Cartelera", "Comprar Entradas", "Mis Compras", "Cerrar sesión")
            self._footer()
            option = self._read_int("Seleccione una opción", 1, 4)
            if option == 4:
                return self._logout()
            actions[option]()
        return self._session_ended()

    # -- client actions ----------------------------------------------------

    def _client_cartelera(self) -> None:
        self._clear()
        self._header("CARTELERA")
        try:
            peliculas = self.client.get_peliculas()
        except ClientError:
            peliculas = []
        if not peliculas:
            self._write("No hay películas en cartelera actualmente.")
            self._pause()
            return

        self._write("PELÍCULAS EN CARTELERA:")
        self._write("")
        for number, pelicula in enumerate(peliculas, start=1):
            self._write("")
            self._write(f"{number}. {pelicula.titulo}")
            self._write(
                f"   Género: {pelicula.genero} | Duración: {pelicula.duracion} minutos"
            )
            with self._reporting():
                self._write_sesiones_of(pelicula)
            self._write("")
            self._write("-------------------------------------------------")
        self._pause()

    def _write_sesiones_of(self, pelicula: Pelicula) -> None:
        sesiones = self.client.get_sesiones_by_pelicula(pelicula.id)
        if not sesiones:
            self._write("   No hay sesiones disponibles para esta película.")
            return
        self._write("   Sesiones disponibles:")
        for sesion in sesiones:
            sala = self.client.get_sala(sesion.sala_id)
            asientos = self.client.get_asientos_by_sala(sala.id)
            libres = sum(1 for asiento in asientos if asiento.disponible)
            inicio = sesion.hora_inicio[11:16]
            fin = sesion.hora_fin[11:16]
            fecha = sesion.hora_inicio[:10]
            self._write(
                f"     - Sesión ID: {sesion.id} | Fecha: {fecha} | "
                f"Hora: {inicio}-{fin} | Sala: {sala.id} | Asientos libres: {libres}"
            )

    def _show_seats(self, sesion: Sesion) -> set[int]:
        """List the seats of a screening's room and return the free seat ids."""
        libres: set[int] = set()
        for asiento in self.client.get_asientos_by_sala(sesion.sala_id):
            free = self.client.check_asiento_disponible(sesion.id, asiento.id)
            if free:
                libres.add(asiento.id)
            state = "libre" if free else "ocupado"
            self._write(f"  Asiento {asiento.numero} (ID {asiento.id}): {state}")
        return libres

    def _client_buy(self) -> None:
        self._clear()
        self._header("COMPRAR ENTRADAS")
        with self._reporting():
            sesiones = {sesion.id: sesion for sesion in self.client.get_sesiones()}
            if not sesiones:
                self._write("No hay sesiones disponibles.")
                self._pause()
                return
            for sesion in sesiones.values():
                self._write(str(sesion))
            sesion = sesiones.get(self._read_id("ID de la sesión"))
            if sesion is None:
                self._error("Sesión no encontrada")
                self._pause()
                return

            libres = self._show_seats(sesion)
            elegidos: list[int] = []
            while True:
                asiento_id = self._read_int("ID del asiento (0 para terminar)", 0, _MAX_ID)
                if asiento_id == 0:
                    break
                if asiento_id not in libres or asiento_id in elegidos:
                    self._error("Asiento no disponible")
                    continue
                elegidos.append(asiento_id)

            if not elegidos:
                self._write("No se seleccionó ningún asiento.")
            elif self._confirm(f"¿Confirmar la compra de {len(elegidos)} entrada(s)?"):
                venta_id = self.client.create_venta(
                    [(sesion.id, asiento_id) for asiento_id in elegidos]
                )
                self._success(f"Compra realizada. ID de venta: {venta_id}")
            else:
                self._write("Compra cancelada.")
            self._pause()

    def _client_purchases(self) -> None:
        self._clear()
        self._header("MIS COMPRAS")
        with self._reporting():
            ventas = self.client.get_ventas_by_user()
            if not ventas:
                self._write("No ha realizado ninguna compra.")
                self._pause()
                return
            for venta in ventas:
                self._write(
                    f"Venta {venta.id} | Fecha: {venta.fecha} | Total: {venta.total:.2f} €"
                )
            if self._confirm("¿Desea ver el detalle de una compra?"):
                self._show_sale_detail(self._read_id("ID de la venta"))
            self._pause()

    def _show_sale_detail(self, venta_id: int) -> None:
        with self._reporting():
            detalle = self.client.get_venta_detalle(venta_id)
            self._write("")
            self._write(f"Venta ID: {detalle.id}")
            self._write(f"Fecha: {detalle.fecha}")
            self._write(f"Descuento: {detalle.descuento:.2f}%")
            self._write(f"Total: {detalle.total:.2f} €")
            self._write("Billetes:")
            for sesion_id, asiento_id in detalle.billetes:
                self._write(f"  - Sesión {sesion_id} | Asiento {asiento_id}")

    # -- administration screens --------------------------------------------

    def _write_peliculas(self, peliculas: list[Pelicula]) -> None:
        if not peliculas:
            self._write("No hay películas registradas.")
        for pelicula in peliculas:
            self._write(str(pelicula))

    def _write_sesiones(self, sesiones: list[Sesion]) -> None:
        if not sesiones:
            self._write("No hay sesiones registradas.")
        for sesion in sesiones:
            self._write(str(sesion))

    def _peliculas_menu(self) -> MenuType | None:
        self._clear()
        self._header("GESTIÓN DE PELÍCULAS")
        self._options(
            "Listar películas",
            "Añadir película",
            "Modificar película",
            "Eliminar película",
            "Buscar por título",
            "Buscar por género",
            "Volver",
        )
        option = self._read_int("Seleccione una opción", 1, 7)
        if option == 7:
            return None
        with self._reporting():
            if option == 1:
                self._write_peliculas(self.client.get_peliculas())
            elif option == 2:
                pelicula = Pelicula(
                    titulo=self._read_text("Título"),
                    duracion=self._read_int("Duración (minutos)", 1, 600),
                    genero=self._read_text("Género"),
                )
                new_id = self.client.create_pelicula(pelicula)
                self._success(f"Película creada con ID {new_id}")
            elif option == 3:
                actual = self.client.get_pelicula(self._read_id("ID de la película"))
                self._write(str(actual))
                self.client.update_pelicula(
                    Pelicula(
                        id=actual.id,
                        titulo=self._read_text("Nuevo título"),
                        duracion=self._read_int("Nueva duración (minutos)", 1, 600),
                        genero=self._read_text("Nuevo género"),
                    )
                )
                self._success("Película actualizada")
            elif option == 4:
                pelicula_id = self._read_id("ID de la película")
                if self._confirm("¿Seguro que desea eliminar la película?"):
                    self.client.delete_pelicula(pelicula_id)
                    self._success("Película eliminada")
                else:
                    self._write("Operación cancelada.")
            elif option == 5:
                titulo = self._read_text("Título")
                self._write_peliculas(self.client.search_peliculas_by_titulo(titulo))
            else:
                genero = self._read_text("Género")
                self._write_peliculas(self.client.search_peliculas_by_genero(genero))
            self._pause()
        return MenuType.PELICULAS

    def _read_sesion_fields(self, sesion_id: int = 0) -> Sesion:
        return Sesion(
            id=sesion_id,
            pelicula_id=self._read_id("ID de la película"),
            sala_id=self._read_id("ID de la sala"),
            hora_inicio=self._read_text("Hora de inicio (AAAA-MM-DD HH:MM:SS)"),
            hora_fin=self._read_text("Hora de fin (AAAA-MM-DD HH:MM:SS)"),
        )

    def _sesiones_menu(self) -> MenuType | None:
        self._clear()
        self._header("GESTIÓN DE SESIONES")
        self._options(
            "Listar sesiones",
            "Añadir sesión",
            "Modificar sesión",
            "Eliminar sesión",
            "Buscar por fecha",
            "Volver",
        )
        option = self._read_int("Seleccione una opción", 1, 6)
        if option == 6:
            return None
        with self._reporting():
            if option == 1:
                self._write_sesiones(self.client.get_sesiones())
            elif option == 2:
                new_id = self.client.create_sesion(self._read_sesion_fields())
                self._success(f"Sesión creada con ID {new_id}")
            elif option == 3:
                actual = self.client.get_sesion(self._read_id("ID de la sesión"))
                self._write(str(actual))
                self.client.update_sesion(self._read_sesion_fields(actual.id))
                self._success("Sesión actualizada")
            elif option == 4:
                sesion_id = self._read_id("ID de la sesión")
                if self._confirm("¿Seguro que desea eliminar la sesión?"):
                    self.client.delete_sesion(sesion_id)
                    self._success("Sesión eliminada")
                else:
                    self._write("Operación cancelada.")
            else:
                fecha = self._read_text("Fecha (AAAA-MM-DD)")
                self._write_sesiones(self.client.get_sesiones_by_fecha(fecha))
            self._pause()
        return MenuType.SESIONES

    def _salas_menu(self) -> MenuType | None:
        self._clear()
        self._header("GESTIÓN DE SALAS")
        self._options("Listar salas", "Ver asientos de una sala", "Volver")
        option = self._read_int("Seleccione una opción", 1, 3)
        if option == 3:
            return None
        with self._reporting():
            if option == 1:
                salas = self.client.get_salas()
                if not salas:
                    self._write("No hay salas registradas.")
                for sala in salas:
                    self._write(f"Sala {sala.id} | Asientos: {sala.num_asientos}")
            else:
                sala_id = self._read_id("ID de la sala")
                for asiento in self.client.get_asientos_by_sala(sala_id):
                    state = "libre" if asiento.disponible else "ocupado"
                    self._write(f"  Asiento {asiento.numero} (ID {asiento.id}): {state}")
            self._pause()
        return MenuType.SALAS

    def _ventas_menu(self) -> MenuType | None:
        self._client_purchases()
        return None

    def _reportes_menu(self) -> MenuType | None:
        self._clear()
        self._header("REPORTES")
        with self._reporting():
            peliculas = self.client.get_peliculas()
            sesiones = self.client.get_sesiones()
            salas = self.client.get_salas()
            self._write(f"Películas: {len(peliculas)}")
            self._write(f"Sesiones: {len(sesiones)}")
            self._write(f"Salas: {len(salas)}")
            per_film = Counter(sesion.pelicula_id for sesion in sesiones)
            for pelicula in peliculas:
                self._write(f"  {pelicula.titulo}: {per_film[pelicula.id]} sesiones")
            self._pause()
        return None


def main(argv: list[str] | None = None) -> int:
    """Connect to the server and run the interactive menu."""
    parser = argparse.ArgumentParser(description="Cliente de gestión de cine")
    parser.add_argument("--host", default="127.0.0.1", help="dirección del servidor")
    parser.add_argument("--port", type=int, default=8080, help="puerto del servidor")
    args = parser.parse_args(argv)

    print("=== CLIENTE DE GESTIÓN DE CINE ===")
    client = Client(args.host, args.port)
    try:
        client.connect()
    except ClientError as exc:
        print(f"Error al conectar al servidor: {exc}", file=sys.stderr)
        print("Presione cualquier tecla para salir...")
        try:
            input()
        except (EOFError, OSError):
            pass
        return 1

    print("Conectado al servidor exitosamente")
    try:
        Menu(client).run()
    finally:
        client.disconnect()
    print("Gracias por usar CINE GESTIÓN")
    return 0