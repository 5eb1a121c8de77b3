"""Binary wire format shared with the SPTF server.

The schema is the server's ``sptf.proto`` (proto3), assembled here at import
time so no generated module has to be shipped::

    message FileUploadRequest {
        message UploadedFile { string fileName = 1; bytes content = 2; }
        string dirPath = 1;
        repeated UploadedFile uploadedFile = 2;
    }
    message DirectoryLayout {
        message FileMetadata {
            enum FileType { NORMAL_FILE = 0; DIRECTORY = 1; }
            FileType fileType = 1;
        }
        message File { string fileName = 1; string path = 2; FileMetadata metadata = 3; }
        repeated File files = 1;
    }
    message ErrorResponse { uint32 errorCode = 1; }
    message GeneralError { uint32 errorCode = 1; }
    message ListDirectoryMessage { string path = 1; }
    message ListDirectoryResponse {
        string directoryPath = 1;
        oneof result { DirectoryLayout DirectoryLayout = 2; ErrorResponse ErrorResponse = 3; }
    }
    message ClientMessage {
        uint32 version = 1; uint64 requestId = 2;
        oneof payload { ListDirectoryMessage ListDirectoryMessage = 3; }
    }
    message ServerMessage {
        uint32 version = 1; uint64 requestId = 2;
        oneof payload { ListDirectoryResponse ListDirectoryResponse = 3; GeneralError GeneralError = 4; }
    }
"""

from typing import Iterable, Tuple, Union

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError

from .config import PROTOCOL_VERSION
from .errors import ProtocolError
from .events import GeneralErrorReceived, ListingFailed, SnapshotReceived
from .models import DirectoryEntry, DirectorySnapshot, FileKind, TransferRequest, UploadedFile

FILE_TYPE_NORMAL = 0
FILE_TYPE_DIRECTORY = 1

_FILE_TYPE_NAMES = {FILE_TYPE_NORMAL: "NORMAL_FILE", FILE_TYPE_DIRECTORY: "DIRECTORY"}

_F = descriptor_pb2.FieldDescriptorProto

InboundEvent = Union[SnapshotReceived, ListingFailed, GeneralErrorReceived]


def _add_field(message, name, number, field_type, type_name=None, repeated=False, oneof_index=None):
    field = message.field.add()
    field.name = name
    field.number = number
    field.type = field_type
    field.label = _F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL
    if type_name is not None:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    return field


def _build_schema() -> descriptor_pb2.FileDescriptorProto:
    schema = descriptor_pb2.FileDescriptorProto()
    schema.name = "sptf.proto"
    schema.package = "sptf"
    schema.syntax = "proto3"

    upload = schema.message_type.add(name="FileUploadRequest")
    uploaded = upload.nested_type.add(name="UploadedFile")
    _add_field(uploaded, "fileName", 1, _F.TYPE_STRING)
    _add_field(uploaded, "content", 2, _F.TYPE_BYTES)
    _add_field(upload, "dirPath", 1, _F.TYPE_STRING)
    _add_field(upload, "uploadedFile", 2, _F.TYPE_MESSAGE, ".sptf.FileUploadRequest.UploadedFile", repeated=True)

    layout = schema.message_type.add(name="DirectoryLayout")
    metadata = layout.nested_type.add(name="FileMetadata")
    file_type = metadata.enum_type.add(name="FileType")
    for number, name in _FILE_TYPE_NAMES.items():
        file_type.value.add(name=name, number=number)
    _add_field(metadata, "fileType", 1, _F.TYPE_ENUM, ".sptf.DirectoryLayout.FileMetadata.FileType")
    layout_file = layout.nested_type.add(name="File")
    _add_field(layout_file, "fileName", 1, _F.TYPE_STRING)
    _add_field(layout_file, "path", 2, _F.TYPE_STRING)
    _add_field(layout_file, "metadata", 3, _F.TYPE_MESSAGE, ".sptf.DirectoryLayout.FileMetadata")
    _add_field(layout, "files", 1, _F.TYPE_MESSAGE, ".sptf.DirectoryLayout.File", repeated=True)

    for name in ("ErrorResponse", "GeneralError"):
        _add_field(schema.message_type.add(name=name), "errorCode", 1, _F.TYPE_UINT32)

    _add_field(schema.message_type.add(name="ListDirectoryMessage"), "path", 1, _F.TYPE_STRING)

    response = schema.message_type.add(name="ListDirectoryResponse")
    response.oneof_decl.add(name="result")
    _add_field(response, "directoryPath", 1, _F.TYPE_STRING)
    _add_field(response, "DirectoryLayout", 2, _F.TYPE_MESSAGE, ".sptf.DirectoryLayout", oneof_index=0)
    _add_field(response, "ErrorResponse", 3, _F.TYPE_MESSAGE, ".sptf.ErrorResponse", oneof_index=0)

    client = schema.message_type.add(name="ClientMessage")
    client.oneof_decl.add(name="payload")
    _add_field(client, "version", 1, _F.TYPE_UINT32)
    _add_field(client, "requestId", 2, _F.TYPE_UINT64)
    _add_field(client, "ListDirectoryMessage", 3, _F.TYPE_MESSAGE, ".sptf.ListDirectoryMessage", oneof_index=0)

    server = schema.message_type.add(name="ServerMessage")
    server.oneof_decl.add(name="payload")
    _add_field(server, "version", 1, _F.TYPE_UINT32)
    _add_field(server, "requestId", 2, _F.TYPE_UINT64)
    _add_field(server, "ListDirectoryResponse", 3, _F.TYPE_MESSAGE, ".sptf.ListDirectoryResponse", oneof_index=0)
    _add_field(server, "GeneralError", 4, _F.TYPE_MESSAGE, ".sptf.GeneralError", oneof_index=0)
    return schema


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_schema().SerializeToString())


def _message_class(name: str):
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"sptf.{name}"))


FileUploadRequest = _message_class("FileUploadRequest")
ClientMessage = _message_class("ClientMessage")
ServerMessage = _message_class("ServerMessage")


def _parse(message_cls, data: bytes, what: str):
    try:
        return message_cls.FromString(bytes(data))
    except DecodeError as exc:
        raise ProtocolError(f"Undecodable {what}: {exc}") from exc


def _check_version(version: int) -> None:
    # 0 means the peer left the field unset
    if version not in (0, PROTOCOL_VERSION):
        raise ProtocolError(f"Unsupported protocol version {version}")


# -- client -> server ----------------------------------------------------

def encode_list_directory(path: str, request_id: int) -> bytes:
    message = ClientMessage(version=PROTOCOL_VERSION, requestId=request_id)
    message.ListDirectoryMessage.SetInParent()
    message.ListDirectoryMessage.path = path
    return message.SerializeToString()


def encode_transfer_request(request: TransferRequest) -> bytes:
    message = FileUploadRequest(dirPath=request.destination_dir)
    for item in request.files:
        message.uploadedFile.add(fileName=item.name, content=item.content)
    return message.SerializeToString()


def _entry_from_message(item) -> DirectoryEntry:
    file_type = item.metadata.fileType
    kind = FileKind.DIRECTORY if file_type == FILE_TYPE_DIRECTORY else FileKind.FILE
    return DirectoryEntry(
        name=item.fileName,
        path=item.path,
        kind=kind,
        metadata={"fileType": _FILE_TYPE_NAMES.get(file_type, "NORMAL_FILE")},
    )


def decode_server_message(data: bytes) -> InboundEvent:
    message = _parse(ServerMessage, data, "server message")
    _check_version(message.version)
    payload = message.WhichOneof("payload")
    if payload == "GeneralError":
        return GeneralErrorReceived(code=message.GeneralError.errorCode)
    if payload != "ListDirectoryResponse":
        raise ProtocolError("Server message carries no payload")

    response = message.ListDirectoryResponse
    result = response.WhichOneof("result")
    if result == "DirectoryLayout":
        entries = tuple(_entry_from_message(item) for item in response.DirectoryLayout.files)
        snapshot = DirectorySnapshot(path=response.directoryPath, entries=entries)
        return SnapshotReceived(request_id=message.requestId, snapshot=snapshot)
    if result == "ErrorResponse":
        return ListingFailed(
            request_id=message.requestId,
            path=response.directoryPath,
            code=response.ErrorResponse.errorCode,
        )
    raise ProtocolError("List directory response carries neither layout nor error")


# -- server -> client, used by peers and fakes ---------------------------

def decode_client_message(data: bytes) -> Tuple[int, str]:
    """Return ``(request_id, path)`` of an outbound list-directory message."""
    message = _parse(ClientMessage, data, "client message")
    _check_version(message.version)
    if message.WhichOneof("payload") != "ListDirectoryMessage":
        raise ProtocolError("Client message carries no payload")
    return message.requestId, message.ListDirectoryMessage.path


def decode_transfer_request(data: bytes) -> TransferRequest:
    message = _parse(FileUploadRequest, data, "upload request")
    files = tuple(UploadedFile(name=item.fileName, content=bytes(item.content)) for item in message.uploadedFile)
    return TransferRequest(destination_dir=message.dirPath, files=files)


def encode_snapshot_reply(
    path: str,
    entries: Iterable[Union[DirectoryEntry, Tuple[str, str, bool]]],
    request_id: int = 0,
) -> bytes:
    message = ServerMessage(version=PROTOCOL_VERSION, requestId=request_id)
    response = message.ListDirectoryResponse
    response.directoryPath = path
    layout = response.DirectoryLayout
    layout.SetInParent()
    for entry in entries:
        if isinstance(entry, DirectoryEntry):
            name, entry_path, is_dir = entry.name, entry.path, entry.is_dir
        else:
            name, entry_path, is_dir = entry
        item = layout.files.add()
        item.fileName = name
        item.path = entry_path
        item.metadata.fileType = FILE_TYPE_DIRECTORY if is_dir else FILE_TYPE_NORMAL
    return message.SerializeToString()


def encode_error_reply(path: str, code: int, request_id: int = 0) -> bytes:
    message = ServerMessage(version=PROTOCOL_VERSION, requestId=request_id)
    response = message.ListDirectoryResponse
    response.directoryPath = path
    response.ErrorResponse.SetInParent()
    response.ErrorResponse.errorCode = code
    return message.SerializeToString()


def encode_general_error(code: int) -> bytes:
    message = ServerMessage(version=PROTOCOL_VERSION)
    message.GeneralError.SetInParent()
    message.GeneralError.errorCode = code
    return message.SerializeToString()

