from flask import Flask, request, render_template
import configparser

app = Flask(__name__)
app.config.setdefault('CHECKER_CONFIG_PATH', 'config.ini')

CONFIG_KEYS = [
    'EMAIL', 'PASSWORD', 'REGION', 'CURRENT_APPOINTMENT_DATE',
    'APPLICATION_ID', 'CONSULATE_ID', 'PUSHBULLET_TOKEN',
    'ELEMENT_TIMEOUT_SECONDS', 'NAVIGATION_TIMEOUT_SECONDS', 'RUN_TIMEOUT_SECONDS',
]
SECRET_KEYS = {'PASSWORD', 'PUSHBULLET_TOKEN'}


def _read_config(path):
    config = configparser.ConfigParser()
    config.optionxform = str
    config.read(path)
    return config


@app.route('/', methods=['GET', 'POST'])
def index():
    path = app.config['CHECKER_CONFIG_PATH']
    config = _read_config(path)
    defaults = config['DEFAULT']

    if request.method == 'POST':
        for key in CONFIG_KEYS:
            value = request.form.get(key, '').strip()
            # Secrets are never echoed back, so an empty field keeps the stored value
            if key in SECRET_KEYS and not value:
                continue
            defaults[key] = value
        defaults['HEADLESS'] = 'True' if request.form.get('HEADLESS') else 'False'
        with open(path, 'w', encoding='utf-8') as f:
            config.write(f)
        return "Configuration saved successfully!"

    current = {k: defaults.get(k, '') for k in CONFIG_KEYS}
    headless = defaults.get('HEADLESS', 'True').strip().lower() in {'1', 'true', 'yes', 'on'}
    return render_template('index.html', keys=CONFIG_KEYS, secret_keys=SECRET_KEYS,
                           current=current, headless=headless)


if __name__ == '__main__':
    app.run(debug=True)
