"""User-facing status lines shown while recording."""

from enum import Enum


class AppStatus(str, Enum):
    """
    What the recording pipeline is doing, as shown to the user.

    Error statuses never carry raw exception detail.
    """
    IDLE = "Pronto para ouvir"
    REQUESTING_MICROPHONE = "Solicitando microfone..."
    CONNECTING = "Conectando ao assistente..."
    LISTENING = "Ouvindo..."
    CONNECTION_ERROR = "Erro na conexão com o assistente"
    PERMISSION_DENIED = "Permissão de microfone negada. Ative nas configurações do sistema."
    DEVICE_UNAVAILABLE = "Seu dispositivo não suporta gravação de áudio."
    MICROPHONE_ERROR = "Erro ao acessar microfone. Verifique as permissões."

    @property
    def is_error(self) -> bool:
        return self in _ERRORS


_ERRORS = {
    AppStatus.CONNECTION_ERROR,
    AppStatus.PERMISSION_DENIED,
    AppStatus.DEVICE_UNAVAILABLE,
    AppStatus.MICROPHONE_ERROR,
}
