"""Demo document for termcalc.

Run it with:
    termcalc calc examples/demo.py
"""

import termcalc as tc
from termcalc import builders as t

document = tc.Document("Demo", settings=tc.DocumentSettings(significant_digits=6))

# Plain constants, one of them with a unit (read in SI base units)
document.add(tc.Equation.constant("n", t.num(5)))
document.add(tc.Equation.constant("length", t.num(250.0, "mm")))

# f(x) = x^2 and its use through a link
document.add(tc.Equation.function("f", ["x"], t.power(t.arg("x"), 2)))
document.add(tc.Equation.constant("f3", t.call("f", 3)))

# Loops
document.add(tc.Equation.constant("triangular", t.summation("i", 1, t.var("n"), t.arg("i"))))
document.add(tc.Equation.constant("factorial", t.product("i", 1, t.var("n"), t.arg("i"))))
document.add(tc.Equation.constant("area", t.integral("x", 0, 1, t.call("f", t.arg("x")))))
document.add(tc.Equation.constant("x", t.num(2.0)))
document.add(tc.Equation.constant("slope", t.derivative("x", t.call("f", t.arg("x")))))
document.add(tc.Equation.constant("root", t.solve("x", 0, 3, t.minus(t.call("f", t.arg("x")), 4))))

# Arrays and sampled intervals
document.add(tc.Equation.array("squares", ["k"], t.times(t.arg("k"), t.arg("k"))))
document.add(tc.Equation.sampled("grid", 0.0, 1.0, 11))
document.add(tc.Equation.constant("picked", t.plus(t.index("squares", 3), t.index("grid", 5))))

# Units flow through arithmetic
document.add(tc.Equation.constant("perimeter", t.times(4, t.var("length"))))
