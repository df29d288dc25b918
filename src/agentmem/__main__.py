"""Entry point: python -m agentmem <command>"""

from agentmem.cli import app

if __name__ == "__main__":
    app(prog_name="amem")
