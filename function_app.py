import azure.functions as func

from shared.db import init_db

# Creates missing tables once when the Functions host starts.
init_db()

app = func.FunctionApp()

# Import endpoint modules so their routes register with the shared app.
import tasks_endpoints  # noqa
import my_tasks_endpoints  # noqa
