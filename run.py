# Dev server for the heatmap dashboard.
# Usage:  python run.py            (HEATDASH_PORT overrides the default 5000)
import os

from heatdash import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host="127.0.0.1", port=int(os.environ.get("HEATDASH_PORT", 5000)), debug=True)
