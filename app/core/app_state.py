from app.realtime.local import LocalBroadcastHub


class AppState:
    def __init__(self) -> None:
        self.transport = LocalBroadcastHub()


state = AppState()
