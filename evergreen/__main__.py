from evergreen.cli import app

app()
