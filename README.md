# cinegestion

Cinema management over a small text protocol: films (`Pelicula`), screenings
(`Sesion`), rooms, seats, tickets and sales. The package holds the wire
protocol, the shared models, a TCP server that dispatches requests to a
pluggable backend, a network client, an interactive console menu and a small
event log.

## Installation

```
pip install .
```

## Running the console client

Start a server first, then run:

```
cinegestion-client
```

The client connects to `127.0.0.1:8080` by default; `--host` and `--port`
choose another server. From the main menu you can log in or leave.

- Administrators get a menu to manage films (list, add, modify, delete, search
  by title or genre), rooms (list rooms, show the seats of a room), screenings
  (list, add, modify, delete, search by date) and a short report of counts.
  The "Gestionar Usuarios" entry does nothing.
- Clients can browse the listings with each film's screenings and free seats,
  buy tickets for a screening and look at their purchases and their details.

Failed requests show the server's error text and wait for a key press.

## The protocol

Every message is an operation code, a `|` separator, the fields each followed
by `|`, and a closing newline:

```python
from cinegestion.protocol import Message, OperationCode

msg = Message(OperationCode.PELICULA_GET)
msg.add_int(7)
wire = msg.serialize()          # "201|7|\n"

back = Message.deserialize(wire)
back.read_int()                 # 7
```

Fields are written with `add_string`, `add_int`, `add_float` and `add_bool`
and read back in order with `read_string`, `read_int`, `read_float` and
`read_bool`; `has_more_data()` tells whether fields are left. A frame without a
separator deserializes to an `OperationCode.ERROR` message reading
"Malformed message".

`send_message(sock, message)` and `receive_message(sock)` move messages over a
connected socket. `receive_message` raises `ConnectionClosed` when the peer goes
away.

## Models

```python
from cinegestion.models import Pelicula, serialize_pelicula_list, deserialize_pelicula_list
from cinegestion.protocol import Message, OperationCode

reply = Message(OperationCode.OK)
serialize_pelicula_list([Pelicula(1, "Matrix", 136, "Ciencia Ficción, Acción")], reply)
deserialize_pelicula_list(reply)
```

`serialize_sesion_list` and `deserialize_sesion_list` do the same for
screenings. `str(pelicula)` and `str(sesion)` give the one-line descriptions
shown to users.

## Using the client from code

```python
from cinegestion.client import Client, ClientError

password = "password"
with Client("127.0.0.1", 8080) as client:
    client.login("juan@example.com", password)
    for pelicula in client.get_peliculas():
        print(pelicula)
```

Failed requests raise `ClientError` with the server's error text. Creating,
updating and deleting films and screenings is refused locally unless the
logged-in user is an administrator. Rooms, seats and sales come back as the
`Sala`, `Asiento`, `Venta` and `VentaDetalle` dataclasses.

## Running a server

`Server` takes a `Backend` that supplies the data. It answers each operation
code through `Server.dispatch`, keeps one login session per connection, and
only lets administrators create, update or delete films and screenings.
Clients are served one after another on the accepting thread.

```python
from cinegestion.server import Server

server = Server(my_backend, 8080, "0.0.0.0")
server.start()      # blocks until server.stop() is called
```

`Server.stop()` closes the listening socket and calls the backend's `close()`.

## Logging

```python
from cinegestion.logger import EventLog, LogLevel

with EventLog("server.log", LogLevel.INFO) as log:
    log.info("Base de datos inicializada: %s", "cine.db")
```

Lines look like `[2024-01-01 12:00:00] [INFO] text`. Messages below the
minimum level are dropped. `LogLevel.from_string("DEBUG")` parses a level name;
unknown names give `INFO`.

## What the package does not do

- It has no storage. `Backend` is only the interface the server expects; you
  have to supply an implementation (for example over a database) yourself.
- It has no command that starts a server; `Server` is started from your own
  code.
- User accounts cannot be managed from the console menu.