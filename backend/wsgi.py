from taproom import create_app

app = create_app()
