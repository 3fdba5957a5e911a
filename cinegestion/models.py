"""Cinema domain records and their protocol encoding."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from cinegestion.protocol import Message


@dataclass
class Pelicula:
    """A film."""

    id: int = 0
    titulo: str = ""
    duracion: int = 0
    genero: str = ""

    def serialize(self, message: Message) -> None:
        message.add_int(self.id)
        message.add_string(self.titulo)
        message.add_int(self.duracion)
        message.add_string(self.genero)

    @classmethod
    def deserialize(cls, message: Message) -> Pelicula:
        return cls(
            id=message.read_int(),
            titulo=message.read_string(),
            duracion=message.read_int(),
            genero=message.read_string(),
        )

    def __str__(self) -> str:
        return (
            f"ID: {self.id} | Título: {self.titulo} | "
            f"Duración: {self.duracion} min | Género: {self.genero}"
        )


@dataclass
class Sesion:
    """A screening of a film in a room."""

    id: int = 0
    pelicula_id: int = 0
    sala_id: int = 0
    hora_inicio: str = ""
    hora_fin: str = ""

    def serialize(self, message: Message) -> None:
        message.add_int(self.id)
        message.add_int(self.pelicula_id)
        message.add_int(self.sala_id)
        message.add_string(self.hora_inicio)
        message.add_string(self.hora_fin)

    @classmethod
    def deserialize(cls, message: Message) -> Sesion:
        return cls(
            id=message.read_int(),
            pelicula_id=message.read_int(),
            sala_id=message.read_int(),
            hora_inicio=message.read_string(),
            hora_fin=message.read_string(),
        )

    def __str__(self) -> str:
        return (
            f"ID: {self.id} | Película ID: {self.pelicula_id} | "
            f"Sala ID: {self.sala_id} | Inicio: {self.hora_inicio} | "
            f"Fin: {self.hora_fin}"
        )


def serialize_pelicula_list(peliculas: Iterable[Pelicula], message: Message) -> None:
    """Append a count followed by each film."""
    peliculas = list(peliculas)
    message.add_int(len(peliculas))
    for pelicula in peliculas:
        pelicula.serialize(message)


def deserialize_pelicula_list(message: Message) -> list[Pelicula]:
    count = message.read_int()
    return [Pelicula.deserialize(message) for _ in range(count)]


def serialize_sesion_list(sesiones: Iterable[Sesion], message: Message) -> None:
    """Append a count followed by each screening."""
    sesiones = list(sesiones)
    message.add_int(len(sesiones))
    for sesion in sesiones:
        sesion.serialize(message)


def deserialize_sesion_list(message: Message) -> list[Sesion]:
    count = message.read_int()
    return [Sesion.deserialize(message) for _ in range(count)]