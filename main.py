#!/usr/bin/env python3
import uvicorn
import os
import sys

from colorama import Fore, Style

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from RelayServer import config

if __name__ == "__main__":
    print(Style.BRIGHT + Fore.GREEN + f"[*] Relay listening on http://{config.HOST}:{config.PORT}" + Style.RESET_ALL)
    print(Style.BRIGHT + Fore.BLUE + f"[*] Agent WebSocket on ws://{config.HOST}:{config.PORT}/ (or /ws/agent)" + Style.RESET_ALL)
    uvicorn.run("RelayServer.main:app", host=config.HOST, port=config.PORT,
                ws_max_size=config.WS_MAX_SIZE, reload=False)
