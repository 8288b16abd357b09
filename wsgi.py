from loadvoice import create_app

app = create_app()
