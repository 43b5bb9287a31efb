"""
In-page scripts evaluated by the controllers

Each constant is a JavaScript function expression suitable for
`page.evaluate(script, arg)` / `frame.evaluate(script, arg)`.
"""

USER_AGENT_SCRIPT = "() => navigator.userAgent"

# Run inside the captcha iframe: the URL of the page that embeds it
PARENT_URL_SCRIPT = """
() => (window.location !== window.parent.location) ? document.referrer : document.location.href
"""

# Replays the captcha completion handshake against an oracle-provided device
# check link. On success the datadome cookie is relayed to the embedding page
# over postMessage (or the top page reloads after a delay); on failure the
# frame reloads.
DATADOME_COMPLETE_CHALLENGE_SCRIPT = """
(deviceCheckLink) => {
    window.captchaCallback = function () {
        var reloadHref = (window.ddm && ddm.referer) || document.referrer;

        var request = new XMLHttpRequest();
        request.open('GET', deviceCheckLink, true);
        request.setRequestHeader('Content-Type', 'application/x-www-form-urlencoded; charset=UTF-8');

        request.onload = function () {
            if (this.status < 200 || this.status >= 400) {
                setTimeout(function () { window.location = window.location; }, 2000);
                return;
            }

            if (!(window.parent && window.parent.postMessage && this.responseText !== undefined)) {
                setTimeout(function () { window.top.location.href = reloadHref; }, 7000);
                return;
            }

            var json = JSON.parse(this.responseText);
            if (!json.hasOwnProperty('cookie') || json.cookie === null) {
                return;
            }

            var origin = '*';
            if (document.referrer) {
                var parts = document.referrer.split('/');
                if (parts.length >= 3 && parts[1] === '') {
                    origin = parts[0] + '//' + parts[2];
                }
                if (origin === document.location.origin) {
                    origin = '*';
                }
            }

            window.parent.postMessage(JSON.stringify({
                cookie: json.cookie,
                url: reloadHref,
                eventType: 'passed',
                responseType: 'captcha'
            }), origin);
        };

        request.send();
    };

    window.captchaCallback();
    return true;
}
"""

# One-shot rewrite of the first document.cookie write that sets ___utmvc;
# the native accessor is restored immediately afterwards.
UTMVC_COOKIE_SUBSTITUTION_SCRIPT = """
(utmvcValue) => {
    const nativeCookie = Object.getOwnPropertyDescriptor(Document.prototype, 'cookie');
    let substituted = false;

    Object.defineProperty(document, 'cookie', {
        configurable: true,
        get: function () { return nativeCookie.get.call(this); },
        set: function (value) {
            if (!substituted && value.includes('___utmvc=')) {
                substituted = true;
                delete document.cookie;
                nativeCookie.set.call(this, value.replace(/___utmvc=([^;]+)/, '___utmvc=' + utmvcValue));
                return;
            }
            nativeCookie.set.call(this, value);
        }
    });
    return true;
}
"""
