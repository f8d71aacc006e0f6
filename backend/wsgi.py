from albaranes import create_app

app = create_app()
