from tillkeeper import create_app

app = create_app()
