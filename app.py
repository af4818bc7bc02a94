import os
from stkpay import create_app
from stkpay.extensions import stk_push

app = create_app(os.getenv('FLASK_ENV', 'development'))

@app.shell_context_processor
def make_shell_context():
    return {
        'stk_push': stk_push.state,
        'tracker': stk_push.state.tracker,
        'initiator': stk_push.state.initiator,
    }

if __name__ == '__main__':
    app.run(debug=app.debug, host='0.0.0.0', port=int(os.getenv('PORT', 5000)))
